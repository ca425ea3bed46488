"""Clean vector markup before it is handed to the host for display.

Applied to renderer output and to remotely fetched documents alike:

- strip active/ambient content (``style``, ``filter``, ``script`` elements,
  ``filter`` and ``on*`` attributes, ``javascript:`` links)
- make the root scale to its container (synthesize ``viewBox``, drop
  width/height, default ``preserveAspectRatio``)
- turn white fills into ``none`` so the host background shows through
- force the theme background onto embedded ``foreignObject`` content
"""

import logging
import math
import re
import xml.etree.ElementTree as ET
from collections.abc import Iterator

from meteogram.models.errors import InvalidVector

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

REMOVED_ELEMENTS = frozenset({"style", "filter", "script"})
DEFAULT_ASPECT = "xMidYMid meet"
_WHITE = frozenset({"#fff", "#ffffff", "white", "rgb(255,255,255)"})
_STYLE_FILL_RE = re.compile(r"(^|;)\s*fill\s*:\s*([^;]*)", re.IGNORECASE)
_SVG_TAG_RE = re.compile(r"<(/?)svg\b[^>]*?(/?)>", re.IGNORECASE)


def local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""  # comments and processing instructions
    return tag.rsplit("}", 1)[-1]


class VectorDocument:
    """Minimal parse / query / serialize interface over ElementTree."""

    def __init__(self, root: ET.Element):
        self.root = root

    @classmethod
    def parse(cls, markup: str) -> "VectorDocument":
        if re.search(r"<!ENTITY", markup, re.IGNORECASE):
            raise InvalidVector("Vector document declares entities.")
        try:
            root = ET.fromstring(markup)
        except ET.ParseError as e:
            raise InvalidVector(f"Invalid SVG content: {e}") from e
        if local_name(root.tag) != "svg":
            raise InvalidVector("Invalid SVG content: root element is not <svg>.")
        return cls(root)

    def elements(self) -> Iterator[ET.Element]:
        return (el for el in self.root.iter() if local_name(el.tag))

    def find_all(self, name: str) -> list[ET.Element]:
        return [el for el in self.elements() if local_name(el.tag) == name]

    def remove_all(self, names: frozenset[str]) -> int:
        """Detach every element whose local name is in ``names``."""
        removed = 0
        for parent in list(self.root.iter()):
            for child in list(parent):
                if local_name(child.tag) in names:
                    parent.remove(child)
                    removed += 1
        return removed

    def serialize(self) -> str:
        if not self.root.tag.startswith("{") and "xmlns" not in self.root.attrib:
            self.root.set("xmlns", SVG_NS)
        return ET.tostring(self.root, encoding="unicode")


def extract_svg_markup(payload: str) -> str:
    """Return the vector document in ``payload``.

    Payloads that are themselves SVG/XML are returned trimmed; otherwise the
    payload is treated as hypertext and its first ``<svg>`` element is cut
    out. Raises InvalidVector when there is none.
    """
    text = payload.strip().lstrip("\ufeff").lstrip()
    if text.startswith("<svg") or text.startswith("<?xml"):
        return text

    depth = 0
    start = None
    for m in _SVG_TAG_RE.finditer(text):
        closing, self_closing = m.group(1), m.group(2)
        if not closing:
            if start is None:
                start = m.start()
                if self_closing:
                    return text[start:m.end()]
            if not self_closing:
                depth += 1
        elif start is not None:
            depth -= 1
            if depth == 0:
                return text[start:m.end()]
    raise InvalidVector("No SVG element found in fetched content.")


def is_white(value: str | None) -> bool:
    if not value:
        return False
    return re.sub(r"\s+", "", value).lower() in _WHITE


def _strip_active_attributes(el: ET.Element) -> None:
    for attr in list(el.attrib):
        name = local_name(attr).lower()
        if name == "filter" or name.startswith("on"):
            del el.attrib[attr]
        elif name == "href" and el.attrib[attr].strip().lower().startswith("javascript:"):
            del el.attrib[attr]


def _neutralize_white_fill(el: ET.Element) -> bool:
    style = el.get("style") or ""
    style_white = any(is_white(m.group(2)) for m in _STYLE_FILL_RE.finditer(style))
    if not (is_white(el.get("fill")) or style_white):
        return False
    el.set("fill", "none")
    if style_white:
        cleaned = _STYLE_FILL_RE.sub(r"\1", style).strip().strip(";").strip()
        if cleaned:
            el.set("style", cleaned)
        else:
            del el.attrib["style"]
    return True


def _numeric_dimension(value: str | None) -> str | None:
    if value is None:
        return None
    raw = value.strip()
    if raw.endswith("px"):
        raw = raw[:-2].strip()
    try:
        number = float(raw)
    except ValueError:
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return raw


def _fix_scaling(root: ET.Element) -> None:
    if root.get("viewBox") is None:
        width = _numeric_dimension(root.get("width"))
        height = _numeric_dimension(root.get("height"))
        if width and height:
            root.set("viewBox", f"0 0 {width} {height}")
    root.attrib.pop("width", None)
    root.attrib.pop("height", None)
    if not root.get("preserveAspectRatio"):
        root.set("preserveAspectRatio", DEFAULT_ASPECT)


def sanitize_document(doc: VectorDocument, background: str | None = None) -> VectorDocument:
    removed = doc.remove_all(REMOVED_ELEMENTS)
    _fix_scaling(doc.root)

    whitened = 0
    for el in doc.elements():
        _strip_active_attributes(el)
        if _neutralize_white_fill(el):
            whitened += 1

    if background:
        for fo in doc.find_all("foreignObject"):
            inner = next((child for child in fo if local_name(child.tag)), None)
            if inner is None:
                continue
            existing = inner.get("style") or ""
            inner.set("style", f"{existing};background:{background} !important;")

    logger.debug("Sanitized SVG: removed %d elements, cleared %d white fills", removed, whitened)
    return doc


def sanitize_svg(markup: str, background: str | None = None) -> str:
    """Sanitize a vector document (or a hypertext page embedding one)."""
    doc = VectorDocument.parse(extract_svg_markup(markup))
    return sanitize_document(doc, background).serialize()
