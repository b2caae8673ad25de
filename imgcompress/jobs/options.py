"""User-facing optimizer options.

Opaque to the scheduler apart from the concurrency limit, the
storage switch and the fields the duration estimate looks at; everything
else is handed to the encoder untouched.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from imgcompress.formats import ImageFormat, OutputFormat


class ResizeMode(str, Enum):
    OFF = "off"
    SCALE = "scale"
    DIMENSIONS = "dimensions"


class ResizeFilter(str, Enum):
    BOX = "box"
    HAMMING = "hamming"
    LANCZOS2 = "lanczos2"
    LANCZOS3 = "lanczos3"
    MKS2013 = "mks2013"


class FitMethod(str, Enum):
    COVER = "cover"
    CONTAIN = "contain"
    STRETCH = "stretch"


class ResizeOptions(BaseModel):
    mode: ResizeMode = ResizeMode.OFF
    method: ResizeFilter = ResizeFilter.LANCZOS3
    scale: int = Field(default=100, ge=1, le=200)  # percent
    width: Optional[int] = Field(default=None, ge=1)
    height: Optional[int] = Field(default=None, ge=1)
    maintain_aspect: bool = True
    fit_method: FitMethod = FitMethod.CONTAIN


class PaletteOptions(BaseModel):
    """Color quantization; fewer colors shrinks PNG output considerably."""
    enabled: bool = False
    colors: int = Field(default=256, ge=2, le=256)
    dither: float = Field(default=1.0, ge=0.0, le=1.0)


class RenamingOptions(BaseModel):
    # {o}=original name, {n}=counter, {d}=date
    pattern: str = "{o}"
    start_sequence: int = Field(default=1, ge=0)


class WebpOptions(BaseModel):
    quality: int = Field(default=75, ge=0, le=100)
    lossless: bool = False
    effort: int = Field(default=4, ge=0, le=9)
    near_lossless: int = Field(default=100, ge=0, le=100)


class JpegOptions(BaseModel):
    quality: int = Field(default=75, ge=0, le=100)


class AvifOptions(BaseModel):
    quality: int = Field(default=50, ge=0, le=100)
    lossless: bool = False
    effort: int = Field(default=4, ge=0, le=10)


class JxlOptions(BaseModel):
    quality: int = Field(default=75, ge=0, le=100)
    lossless: bool = False
    effort: int = Field(default=7, ge=3, le=9)


class OptimizerConfig(BaseModel):
    """Every option a user can change for a batch."""
    output_format: OutputFormat = OutputFormat.PNG
    maintain_original_format: bool = False

    # PNG
    level: int = Field(default=2, ge=1, le=6)
    interlace: bool = False

    webp: WebpOptions = Field(default_factory=WebpOptions)
    jpeg: JpegOptions = Field(default_factory=JpegOptions)
    avif: AvifOptions = Field(default_factory=AvifOptions)
    jxl: JxlOptions = Field(default_factory=JxlOptions)

    auto_download: bool = False
    concurrency: int = Field(default=5, ge=1, le=16)

    resize: ResizeOptions = Field(default_factory=ResizeOptions)
    palette: PaletteOptions = Field(default_factory=PaletteOptions)
    renaming: RenamingOptions = Field(default_factory=RenamingOptions)

    strip_metadata: bool = True
    disable_storage: bool = False  # incognito: no job store reads or writes

    def effective_for(self, source: ImageFormat) -> "OptimizerConfig":
        """Settings actually handed to the encoder for a given source format.

        With ``maintain_original_format`` the output follows the input
        whenever the input format is itself encodable.
        """
        if not self.maintain_original_format:
            return self
        same = OutputFormat.for_source(source)
        if same is None or same is self.output_format:
            return self
        return self.model_copy(update={"output_format": same})

    def is_lossless(self) -> bool:
        fmt = self.output_format
        if fmt is OutputFormat.WEBP:
            return self.webp.lossless
        if fmt is OutputFormat.AVIF:
            return self.avif.lossless
        if fmt is OutputFormat.JXL:
            return self.jxl.lossless
        # PNG and QOI are always lossless, JPEG never is
        return fmt in (OutputFormat.PNG, OutputFormat.QOI)
