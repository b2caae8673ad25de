"""Local encoder built on Pillow.

Covers decode, optional resize and palette reduction, and re-encoding to
whichever output formats the installed Pillow can write. Formats without a
Pillow writer (JPEG XL, and QOI or AVIF on older Pillow builds) fail the
job with a readable message instead of producing something else.
"""

import io
import logging
import time
from typing import Any, Dict, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from imgcompress.encoders.base import CancelToken, EncodeResult, Encoder
from imgcompress.errors import EncoderError
from imgcompress.formats import ImageFormat, OutputFormat
from imgcompress.jobs.options import (
    FitMethod,
    OptimizerConfig,
    PaletteOptions,
    ResizeFilter,
    ResizeMode,
    ResizeOptions,
)

logger = logging.getLogger(__name__)

_RESAMPLE = {
    ResizeFilter.BOX: Image.Resampling.BOX,
    ResizeFilter.HAMMING: Image.Resampling.HAMMING,
    ResizeFilter.LANCZOS2: Image.Resampling.BICUBIC,
    ResizeFilter.LANCZOS3: Image.Resampling.LANCZOS,
    ResizeFilter.MKS2013: Image.Resampling.LANCZOS,
}

# Formats whose Pillow writers accept exif/icc_profile
_METADATA_FORMATS = (ImageFormat.PNG, ImageFormat.JPEG, ImageFormat.WEBP, ImageFormat.AVIF)


class PillowEncoder(Encoder):
    """Default in-process encoder."""

    def supports(self, output_format: ImageFormat) -> bool:
        pil_name = output_format.pil_format
        if pil_name is None:
            return False
        Image.init()
        return pil_name in Image.SAVE

    def encode(
        self,
        data: bytes,
        source_format: Optional[ImageFormat],
        config: OptimizerConfig,
        cancel: CancelToken,
    ) -> EncodeResult:
        started = time.perf_counter()
        cancel.raise_if_cancelled()

        target = config.output_format.as_image_format()
        if not self.supports(target):
            raise EncoderError(f"{target.value.upper()} output is not supported by this encoder")

        try:
            with Image.open(io.BytesIO(data)) as src:
                src.load()
                image = ImageOps.exif_transpose(src)
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
            raise EncoderError(f"Could not decode image: {e}") from e

        cancel.raise_if_cancelled()
        image = _resize(image, config.resize)

        cancel.raise_if_cancelled()
        if config.palette.enabled:
            image = _quantize(image, config.palette)

        cancel.raise_if_cancelled()
        image = _convert_for(image, target)
        params = _save_params(config, image)

        buf = io.BytesIO()
        try:
            image.save(buf, format=target.pil_format, **params)
        except (OSError, ValueError, KeyError) as e:
            raise EncoderError(f"Encoding to {target.value.upper()} failed: {e}") from e
        encoded = buf.getvalue()

        cancel.raise_if_cancelled()
        elapsed_ms = (time.perf_counter() - started) * 1000

        if target is source_format and len(encoded) >= len(data):
            logger.debug("Re-encoding did not shrink %s input; keeping original", target.value)
            return EncodeResult(data=data, format=target, elapsed_ms=elapsed_ms, is_original=True)

        return EncodeResult(data=encoded, format=target, elapsed_ms=elapsed_ms)


def _target_size(image: Image.Image, opts: ResizeOptions) -> Optional[Tuple[int, int]]:
    w, h = image.size
    if opts.mode == ResizeMode.SCALE:
        if opts.scale == 100:
            return None
        return max(1, round(w * opts.scale / 100)), max(1, round(h * opts.scale / 100))
    if opts.mode == ResizeMode.DIMENSIONS:
        if opts.width is None and opts.height is None:
            return None
        if opts.width is None:
            return max(1, round(w * opts.height / h)), opts.height
        if opts.height is None:
            return opts.width, max(1, round(h * opts.width / w))
        return opts.width, opts.height
    return None


def _resize(image: Image.Image, opts: ResizeOptions) -> Image.Image:
    size = _target_size(image, opts)
    if size is None or size == image.size:
        return image
    method = _RESAMPLE[opts.method]
    both_given = opts.mode == ResizeMode.DIMENSIONS and opts.width and opts.height
    if both_given and opts.maintain_aspect:
        if opts.fit_method == FitMethod.COVER:
            return ImageOps.fit(image, size, method=method)
        if opts.fit_method == FitMethod.CONTAIN:
            return ImageOps.contain(image, size, method=method)
    return image.resize(size, resample=method)


def _quantize(image: Image.Image, opts: PaletteOptions) -> Image.Image:
    has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
    image = image.convert("RGBA" if has_alpha else "RGB")
    dither = Image.Dither.FLOYDSTEINBERG if opts.dither >= 0.5 else Image.Dither.NONE
    method = Image.Quantize.FASTOCTREE if has_alpha else Image.Quantize.MEDIANCUT
    return image.quantize(colors=opts.colors, method=method, dither=dither)


def _convert_for(image: Image.Image, target: ImageFormat) -> Image.Image:
    """Bring the image into a mode the target writer accepts."""
    if target in (ImageFormat.PNG, ImageFormat.GIF):
        return image
    has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
    if target is ImageFormat.JPEG:
        if has_alpha:
            rgba = image.convert("RGBA")
            flat = Image.new("RGB", rgba.size, (255, 255, 255))
            flat.paste(rgba, mask=rgba.getchannel("A"))
            return flat
        return image if image.mode in ("RGB", "L") else image.convert("RGB")
    if image.mode not in ("RGB", "RGBA"):
        return image.convert("RGBA" if has_alpha else "RGB")
    return image


def _save_params(config: OptimizerConfig, image: Image.Image) -> Dict[str, Any]:
    fmt = config.output_format
    params: Dict[str, Any] = {}
    if fmt is OutputFormat.PNG:
        params["optimize"] = config.level >= 4
        params["compress_level"] = min(9, 3 + config.level)
    elif fmt is OutputFormat.JPEG:
        params["quality"] = config.jpeg.quality
        params["optimize"] = True
        params["progressive"] = config.interlace
    elif fmt is OutputFormat.WEBP:
        params["lossless"] = config.webp.lossless
        params["quality"] = config.webp.quality
        params["method"] = min(6, config.webp.effort)
    elif fmt is OutputFormat.AVIF:
        params["quality"] = 100 if config.avif.lossless else config.avif.quality
        params["speed"] = max(0, 10 - config.avif.effort)
    # QOI has no tuning knobs; JXL never gets here

    if config.strip_metadata:
        # The PNG writer falls back to image.info for the ICC profile
        image.info.pop("icc_profile", None)
        image.info.pop("exif", None)
    elif fmt.as_image_format() in _METADATA_FORMATS:
        if image.info.get("icc_profile"):
            params["icc_profile"] = image.info["icc_profile"]
        exif = image.getexif()
        if len(exif):
            params["exif"] = exif.tobytes()
    return params
