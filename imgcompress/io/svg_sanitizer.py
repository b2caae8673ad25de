"""Allowlist sanitizer for SVG uploads.

SVG can carry script, event handlers and foreign HTML. Parsing goes through
defusedxml (a DOCTYPE line is tolerated, but entity declarations and
external resources are refused); the tree
is then pruned to a conservative set of drawing elements and presentation
attributes before being serialized again.
"""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Optional

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
XML_NS = "http://www.w3.org/XML/1998/namespace"

ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

ALLOWED_ELEMENTS = frozenset({
    "svg", "g", "defs", "symbol", "use", "title", "desc", "metadata", "switch", "view",
    "path", "rect", "circle", "ellipse", "line", "polyline", "polygon",
    "text", "tspan", "textPath", "image", "marker", "pattern", "mask", "clipPath",
    "linearGradient", "radialGradient", "stop",
    "filter", "feBlend", "feColorMatrix", "feComponentTransfer", "feComposite",
    "feDropShadow", "feFlood", "feFuncA", "feFuncB", "feFuncG", "feFuncR",
    "feGaussianBlur", "feMerge", "feMergeNode", "feMorphology", "feOffset",
    "feTile", "feTurbulence",
})

ALLOWED_ATTRIBUTES = frozenset({
    "id", "class", "style", "lang", "space", "version", "viewBox", "preserveAspectRatio",
    "x", "y", "x1", "x2", "y1", "y2", "cx", "cy", "r", "rx", "ry", "fx", "fy",
    "width", "height", "d", "points", "transform", "pathLength",
    "fill", "fill-opacity", "fill-rule", "stroke", "stroke-width", "stroke-linecap",
    "stroke-linejoin", "stroke-miterlimit", "stroke-dasharray", "stroke-dashoffset",
    "stroke-opacity", "opacity", "color", "display", "visibility", "overflow",
    "clip-path", "clip-rule", "clipPathUnits", "mask", "maskUnits", "maskContentUnits",
    "filter", "filterUnits", "primitiveUnits",
    "font-family", "font-size", "font-style", "font-weight", "text-anchor",
    "dominant-baseline", "letter-spacing", "word-spacing", "text-decoration",
    "textLength", "lengthAdjust", "startOffset", "dx", "dy", "rotate",
    "offset", "stop-color", "stop-opacity", "gradientUnits", "gradientTransform",
    "spreadMethod", "patternUnits", "patternContentUnits", "patternTransform",
    "markerWidth", "markerHeight", "markerUnits", "refX", "refY", "orient",
    "marker-start", "marker-mid", "marker-end",
    "href", "in", "in2", "result", "stdDeviation", "mode", "operator", "type",
    "values", "k1", "k2", "k3", "k4", "flood-color", "flood-opacity",
    "baseFrequency", "numOctaves", "seed", "stitchTiles", "radius",
    "tableValues", "slope", "intercept", "amplitude", "exponent",
    "vector-effect", "shape-rendering", "image-rendering", "paint-order",
})

# url(...) pointing anywhere but a fragment of this document
_EXTERNAL_URL = re.compile(r"url\(\s*['\"]?\s*(?!#)", re.IGNORECASE)
_SCRIPTY = re.compile(r"javascript:|vbscript:|expression\s*\(|@import", re.IGNORECASE)
_SAFE_DATA_IMAGE = re.compile(r"^data:image/(png|jpeg|gif|webp);", re.IGNORECASE)


def _local(name: str) -> str:
    return name.rsplit("}", 1)[-1]


def _namespace(name: str) -> str:
    return name[1:].split("}", 1)[0] if name.startswith("{") else ""


def _safe_href(value: str) -> bool:
    value = value.strip()
    return value.startswith("#") or bool(_SAFE_DATA_IMAGE.match(value))


def _attribute_allowed(name: str, value: str) -> bool:
    local = _local(name)
    if local.lower().startswith("on") or local not in ALLOWED_ATTRIBUTES:
        return False
    ns = _namespace(name)
    if ns not in ("", XLINK_NS, XML_NS):
        return False
    if local == "href":
        return _safe_href(value)
    if _SCRIPTY.search(value) or _EXTERNAL_URL.search(value):
        return False
    return True


def _element_allowed(elem: ET.Element) -> bool:
    tag = elem.tag
    if not isinstance(tag, str):
        return False
    return _namespace(tag) in ("", SVG_NS) and _local(tag) in ALLOWED_ELEMENTS


def _prune(elem: ET.Element) -> None:
    for name, value in list(elem.attrib.items()):
        if not _attribute_allowed(name, value):
            del elem.attrib[name]
    for child in list(elem):
        if _element_allowed(child):
            _prune(child)
        else:
            elem.remove(child)


def sanitize_svg(data: bytes) -> Optional[bytes]:
    """Return sanitized SVG bytes, or None if ``data`` is not usable SVG."""
    try:
        root = fromstring(data, forbid_dtd=False, forbid_entities=True, forbid_external=True)
    except (ET.ParseError, DefusedXmlException, ValueError) as e:
        logger.warning("[Security] SVG could not be parsed safely: %s", e)
        return None

    if not _element_allowed(root) or _local(root.tag) != "svg":
        logger.warning("[Security] Document root is not <svg>")
        return None

    _prune(root)
    return ET.tostring(root, encoding="unicode").encode("utf-8")
