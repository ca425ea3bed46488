"""Tests for vector document sanitization."""

import xml.etree.ElementTree as ET

import pytest

from meteogram.chart.sanitizer import (
    extract_svg_markup,
    is_white,
    local_name,
    sanitize_svg,
)
from meteogram.models.errors import InvalidVector

SVG = "{http://www.w3.org/2000/svg}"


def _names(root: ET.Element) -> set[str]:
    return {local_name(el.tag) for el in root.iter()}


class TestSanitizePortalSvg:
    @pytest.fixture
    def root(self, portal_svg: str) -> ET.Element:
        return ET.fromstring(sanitize_svg(portal_svg, background="#101418"))

    def test_active_elements_removed(self, root):
        names = _names(root)
        assert "style" not in names
        assert "filter" not in names
        assert "script" not in names

    def test_active_attributes_removed(self, root):
        for el in root.iter():
            for attr in el.attrib:
                name = local_name(attr)
                assert name != "filter"
                assert not name.startswith("on")
                if name == "href":
                    assert not el.attrib[attr].startswith("javascript:")

    def test_scaling(self, root):
        assert root.get("viewBox") == "0 0 782 391"
        assert root.get("width") is None
        assert root.get("height") is None
        assert root.get("preserveAspectRatio") == "xMidYMid meet"

    def test_white_fills_cleared(self, root):
        rect = root.find(f"{SVG}rect")
        assert rect.get("fill") == "none"
        path = root.find(f".//{SVG}path")
        assert path.get("fill") == "none"
        assert path.get("style") == "stroke-width: 2"

    def test_other_fills_untouched(self, root):
        text = root.find(f".//{SVG}text")
        assert text.get("fill") == "#21292b"

    def test_foreign_object_background(self, root):
        fo = root.find(f"{SVG}foreignObject")
        inner = list(fo)[0]
        assert "background:#101418 !important" in inner.get("style")
        assert "color: red" in inner.get("style")


class TestSanitizeSvg:
    def test_existing_viewbox_kept(self):
        out = sanitize_svg('<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 5" width="100" height="50"/>')
        root = ET.fromstring(out)
        assert root.get("viewBox") == "0 0 10 5"
        assert root.get("width") is None

    def test_existing_aspect_ratio_kept(self):
        out = sanitize_svg('<svg xmlns="http://www.w3.org/2000/svg" preserveAspectRatio="none"/>')
        assert ET.fromstring(out).get("preserveAspectRatio") == "none"

    def test_non_numeric_size_gives_no_viewbox(self):
        out = sanitize_svg('<svg xmlns="http://www.w3.org/2000/svg" width="100%" height="20em"/>')
        assert ET.fromstring(out).get("viewBox") is None

    def test_svg_embedded_in_html(self):
        page = (
            "<html><body><p>Forecast</p>"
            '<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"><rect fill="white"/></svg>'
            "</body></html>"
        )
        root = ET.fromstring(sanitize_svg(page))
        assert root.get("viewBox") == "0 0 10 10"

    def test_missing_namespace_added(self):
        out = sanitize_svg("<svg><rect/></svg>")
        assert 'xmlns="http://www.w3.org/2000/svg"' in out

    @pytest.mark.parametrize(
        "markup",
        [
            "",
            "<html><body>No chart</body></html>",
            "<svg><unclosed></svg>",
            '<?xml version="1.0"?><!DOCTYPE svg [<!ENTITY x "y">]><svg>&x;</svg>',
        ],
    )
    def test_invalid_vector(self, markup):
        with pytest.raises(InvalidVector):
            sanitize_svg(markup)

    def test_non_svg_root(self):
        with pytest.raises(InvalidVector):
            sanitize_svg('<?xml version="1.0"?><html/>')


class TestExtractSvgMarkup:
    def test_nested_svg(self):
        page = "<div><svg id='a'><svg id='b'/><svg id='c'></svg></svg><svg id='d'/></div>"
        assert extract_svg_markup(page) == "<svg id='a'><svg id='b'/><svg id='c'></svg></svg>"

    def test_bare_document_trimmed(self):
        assert extract_svg_markup("\ufeff  <svg/>\n") == "<svg/>"


class TestIsWhite:
    @pytest.mark.parametrize("value", ["#fff", "#FFFFFF", "white", "rgb(255, 255, 255)"])
    def test_white(self, value):
        assert is_white(value)

    @pytest.mark.parametrize("value", [None, "", "#fffffe", "none", "#000"])
    def test_not_white(self, value):
        assert not is_white(value)
