"""Intake validation: archive expansion, signature sniffing, sanitization.

Nothing here raises to the caller. Each input either comes back typed and
possibly rewritten, or is counted as rejected.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from imgcompress.formats import ImageFormat
from imgcompress.io.archive import expand_archive, is_archive
from imgcompress.io.signature import sniff
from imgcompress.io.svg_sanitizer import sanitize_svg
from imgcompress.jobs.models import InputUnit

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    accepted: List[InputUnit] = field(default_factory=list)
    rejected_count: int = 0


def _extension(name: str) -> str:
    return name.rsplit(".", 1)[1].lower() if "." in name else ""


def validate_unit(unit: InputUnit) -> Optional[InputUnit]:
    """Accept one (non-archive) unit, or return None to reject it."""
    if not unit.data:
        logger.warning("[Security] Rejected file %r: empty payload.", unit.name)
        return None

    detected = sniff(unit.data, unit.media_type)
    if detected is None:
        logger.warning("[Security] Rejected file %r: Invalid signature.", unit.name)
        return None

    ext = _extension(unit.name)
    if ext not in detected.accepted_extensions:
        logger.warning(
            "[Security] Rejected file %r: Extension (.%s) does not match detected content (%s).",
            unit.name, ext, detected.value,
        )
        return None

    if detected is ImageFormat.SVG:
        clean = sanitize_svg(unit.data)
        if clean is None:
            return None
        return unit.model_copy(
            update={"data": clean, "media_type": detected.mime_type, "format": detected}
        )

    return unit.model_copy(update={"format": detected})


def validate_batch(
    units: Iterable[InputUnit],
    max_entry_bytes: Optional[int] = None,
) -> ValidationResult:
    """Expand archives, then validate every resulting unit."""
    expanded: List[InputUnit] = []
    for unit in units:
        if is_archive(unit):
            expanded.extend(expand_archive(unit, max_entry_bytes=max_entry_bytes))
        else:
            expanded.append(unit)

    result = ValidationResult()
    for unit in expanded:
        validated = validate_unit(unit)
        if validated is None:
            result.rejected_count += 1
        else:
            result.accepted.append(validated)
    return result
