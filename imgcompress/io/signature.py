"""Content sniffing by magic bytes.

Only the first 16 bytes are inspected; that is enough for every format in
the table and keeps sniffing cheap for large uploads.
"""

from typing import Optional

from imgcompress.formats import ImageFormat

HEAD_BYTES = 16


def _matches(head: bytes, offset: int, magic: bytes) -> bool:
    return head[offset:offset + len(magic)] == magic


def sniff(data: bytes, declared_mime: Optional[str] = None) -> Optional[ImageFormat]:
    """Detect the image format of ``data``, or None if nothing matches.

    SVG has no magic number: it is recognised only when the content looks
    like markup AND the declared type already claims SVG.
    """
    head = data[:HEAD_BYTES]

    if _matches(head, 0, b"\x89PNG"):
        return ImageFormat.PNG
    if _matches(head, 0, b"\xff\xd8\xff"):
        return ImageFormat.JPEG
    if _matches(head, 0, b"RIFF") and _matches(head, 8, b"WEBP"):
        return ImageFormat.WEBP
    if _matches(head, 4, b"ftypavif"):
        return ImageFormat.AVIF
    if _matches(head, 0, b"qoif"):
        return ImageFormat.QOI
    # JPEG XL: bare codestream, then ISO-BMFF container box
    if _matches(head, 0, b"\xff\x0a"):
        return ImageFormat.JXL
    if _matches(head, 0, b"\x00\x00\x00\x0cJXL "):
        return ImageFormat.JXL
    if _matches(head, 0, b"GIF8"):
        return ImageFormat.GIF

    text = head.decode("utf-8", errors="ignore").lstrip("\ufeff").strip()
    if text.startswith("<") and declared_mime and "svg" in declared_mime.lower():
        return ImageFormat.SVG

    return None
