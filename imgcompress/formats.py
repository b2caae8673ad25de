"""Closed set of image formats the pipeline understands.

Every table below is keyed by enum member and checked for completeness at
import time, so adding a format without teaching each table about it fails
immediately instead of silently falling through a string comparison.
"""

from enum import Enum
from typing import Dict, Optional, Tuple


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"
    AVIF = "avif"
    QOI = "qoi"
    JXL = "jxl"
    GIF = "gif"
    SVG = "svg"

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]

    @property
    def extension(self) -> str:
        """Extension used when writing a file of this format."""
        return _EXTENSIONS[self][0]

    @property
    def accepted_extensions(self) -> Tuple[str, ...]:
        return _EXTENSIONS[self]

    @property
    def pil_format(self) -> Optional[str]:
        """Pillow plugin name, or None when Pillow has no plugin for it."""
        return _PIL_FORMATS[self]

    @property
    def is_vector(self) -> bool:
        return self is ImageFormat.SVG

    @property
    def previewable(self) -> bool:
        """Whether a typical image viewer can display the format directly."""
        return self not in (ImageFormat.QOI, ImageFormat.JXL)

    @classmethod
    def from_mime(cls, mime_type: Optional[str]) -> Optional["ImageFormat"]:
        if not mime_type:
            return None
        return _BY_MIME.get(mime_type.split(";")[0].strip().lower())

    @classmethod
    def from_extension(cls, extension: Optional[str]) -> Optional["ImageFormat"]:
        if not extension:
            return None
        return _BY_EXTENSION.get(extension.lower().lstrip("."))

    @classmethod
    def from_filename(cls, filename: str) -> Optional["ImageFormat"]:
        if "." not in filename:
            return None
        return cls.from_extension(filename.rsplit(".", 1)[1])


class OutputFormat(str, Enum):
    """Formats the encoder can be asked to produce."""

    PNG = "png"
    WEBP = "webp"
    JPEG = "jpeg"
    AVIF = "avif"
    QOI = "qoi"
    JXL = "jxl"

    def as_image_format(self) -> ImageFormat:
        return ImageFormat(self.value)

    @property
    def mime_type(self) -> str:
        return self.as_image_format().mime_type

    @property
    def extension(self) -> str:
        return self.as_image_format().extension

    @classmethod
    def for_source(cls, source: ImageFormat) -> Optional["OutputFormat"]:
        """Encodable counterpart of a source format (None for gif/svg)."""
        try:
            return cls(source.value)
        except ValueError:
            return None


_MIME_TYPES: Dict[ImageFormat, str] = {
    ImageFormat.PNG: "image/png",
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.WEBP: "image/webp",
    ImageFormat.AVIF: "image/avif",
    ImageFormat.QOI: "image/qoi",
    ImageFormat.JXL: "image/jxl",
    ImageFormat.GIF: "image/gif",
    ImageFormat.SVG: "image/svg+xml",
}

# First entry is the canonical extension for downloads
_EXTENSIONS: Dict[ImageFormat, Tuple[str, ...]] = {
    ImageFormat.PNG: ("png",),
    ImageFormat.JPEG: ("jpg", "jpeg"),
    ImageFormat.WEBP: ("webp",),
    ImageFormat.AVIF: ("avif",),
    ImageFormat.QOI: ("qoi",),
    ImageFormat.JXL: ("jxl",),
    ImageFormat.GIF: ("gif",),
    ImageFormat.SVG: ("svg",),
}

_PIL_FORMATS: Dict[ImageFormat, Optional[str]] = {
    ImageFormat.PNG: "PNG",
    ImageFormat.JPEG: "JPEG",
    ImageFormat.WEBP: "WEBP",
    ImageFormat.AVIF: "AVIF",
    ImageFormat.QOI: "QOI",
    ImageFormat.JXL: None,
    ImageFormat.GIF: "GIF",
    ImageFormat.SVG: None,
}

for _table in (_MIME_TYPES, _EXTENSIONS, _PIL_FORMATS):
    _missing = set(ImageFormat) - set(_table)
    if _missing:
        raise RuntimeError(f"format table incomplete: {sorted(m.value for m in _missing)}")

_BY_MIME: Dict[str, ImageFormat] = {mime: fmt for fmt, mime in _MIME_TYPES.items()}
# Aliases seen in the wild
_BY_MIME["image/jpg"] = ImageFormat.JPEG
_BY_MIME["image/x-qoi"] = ImageFormat.QOI

_BY_EXTENSION: Dict[str, ImageFormat] = {
    ext: fmt for fmt, exts in _EXTENSIONS.items() for ext in exts
}

SUPPORTED_EXTENSIONS: Tuple[str, ...] = tuple(sorted(_BY_EXTENSION))


def format_bytes(num_bytes: int, decimals: int = 2) -> str:
    """Human-readable size, e.g. ``format_bytes(1536) == '1.5 KB'``."""
    if num_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(num_bytes)
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1
    return f"{round(value, decimals):g} {units[idx]}"
