"""
icons_sanitizer.py
------------------
Turns one standalone SVG document into a fragment that can be embedded next to
other, unrelated SVG fragments inside a single document.

Independently authored icons routinely reuse the same ids (`a`, `clip0`,
`gradient-1`) and class names (`cls-1`). Merged as-is, one icon's gradient,
clip path or stylesheet silently applies to another. Every call therefore gets
a fresh suffix and every local id, id reference and class name is rewritten to
carry it. The suffix is per call, not per icon name, so the same icon can appear
twice in one composite.

The root <svg> tag is dropped; the caller re-wraps the children in its own
<svg> using the viewBox resolved here.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from lxml import etree

XLINK_HREF = "{http://www.w3.org/1999/xlink}href"
# An undeclared `xlink` prefix survives recovery parsing as a literal attribute name.
HREF_ATTRS = (XLINK_HREF, "xlink:href", "href")

NAME_STRIP_RE = re.compile(r"[^a-zA-Z0-9_-]")
URL_REF_RE = re.compile(r"url\(\s*(['\"]?)#([^)'\"\s]+)\1\s*\)")
# A class selector: a dot followed by a CSS identifier, which cannot start with
# a digit. Keeps `1.5em` in at-rule preludes intact.
CSS_CLASS_RE = re.compile(r"\.(-?[_a-zA-Z][\w-]*)")
NUMBER_PREFIX_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _parser():
    # Parser objects must not be shared between threads.
    return etree.XMLParser(
        recover=True,
        remove_comments=True,
        remove_pis=True,
        resolve_entities=False,
        no_network=True,
    )


@dataclass(frozen=True)
class Fragment:
    icon_name: str
    markup: str
    view_box: str
    suffix: str


def make_suffix(icon_name: str) -> str:
    return f"_{NAME_STRIP_RE.sub('', icon_name)}_{uuid.uuid4().hex[:8]}"


def _local_name(element) -> str:
    return etree.QName(element).localname


def _find_svg_root(document):
    if _local_name(document) == "svg":
        return document
    return document.find(".//{*}svg")


def _format_number(value: float) -> str:
    return str(int(value)) if value == int(value) else repr(value)


def _parse_length(raw: Optional[str]) -> Optional[float]:
    if not raw:
        return None
    match = NUMBER_PREFIX_RE.match(raw)
    if not match:
        return None
    value = float(match.group(1))
    return value if value > 0 else None


def resolve_view_box(svg) -> Optional[str]:
    """Explicit viewBox, else one synthesized from width/height, else None."""
    view_box = (svg.get("viewBox") or "").strip()
    if view_box:
        return view_box
    width = _parse_length(svg.get("width"))
    height = _parse_length(svg.get("height"))
    if width is None or height is None:
        return None
    return f"0 0 {_format_number(width)} {_format_number(height)}"


def _rewrite_url_refs(value: str, id_map: Dict[str, str]) -> str:
    def repl(match: re.Match) -> str:
        new_id = id_map.get(match.group(2))
        if new_id is None:
            return match.group(0)
        quote = match.group(1)
        return f"url({quote}#{new_id}{quote})"

    return URL_REF_RE.sub(repl, value)


def rewrite_css_classes(css: str, suffix: str) -> str:
    """Suffix class selectors in selector preludes; declaration blocks are untouched."""
    parts = re.split(r"([{}])", css)
    out = []
    for i, part in enumerate(parts):
        followed_by_block = i + 1 < len(parts) and parts[i + 1] == "{"
        if followed_by_block and part not in ("{", "}"):
            part = CSS_CLASS_RE.sub(lambda m: f".{m.group(1)}{suffix}", part)
        out.append(part)
    return "".join(out)


def _set_style_text(style, css: str) -> None:
    if any(ch in css for ch in "<>&") and "]]>" not in css:
        style.text = etree.CDATA(css)
    else:
        style.text = css


def namespace_tree(svg, suffix: str) -> Dict[str, str]:
    """Rewrite ids, id references and class names under `svg` in place. Returns the id map."""
    elements = [el for el in svg.iterdescendants() if isinstance(el.tag, str)]

    id_map: Dict[str, str] = {}
    for el in elements:
        old_id = el.get("id")
        if old_id:
            new_id = old_id + suffix
            el.set("id", new_id)
            id_map[old_id] = new_id

    for el in elements:
        for attr_name, attr_value in list(el.attrib.items()):
            if attr_name == "id":
                continue
            if "url(" in attr_value:
                rewritten = _rewrite_url_refs(attr_value, id_map)
                if rewritten != attr_value:
                    el.set(attr_name, rewritten)
            if attr_name in HREF_ATTRS and attr_value.startswith("#"):
                new_id = id_map.get(attr_value[1:])
                if new_id is not None:
                    if attr_name == "xlink:href":
                        # lxml will not set a prefixed name; store it namespaced instead.
                        del el.attrib[attr_name]
                        attr_name = XLINK_HREF
                    el.set(attr_name, f"#{new_id}")

    for el in elements:
        if _local_name(el) == "style" and el.text:
            css = rewrite_css_classes(el.text, suffix)
            _set_style_text(el, _rewrite_url_refs(css, id_map))

    for el in elements:
        classes = el.get("class")
        if classes is not None:
            el.set("class", " ".join(f"{cls}{suffix}" for cls in classes.split()))

    return id_map


def _inner_markup(svg) -> str:
    return "".join(etree.tostring(child, encoding="unicode", with_tail=True) for child in svg).strip()


def sanitize_svg(source, icon_name: str) -> Optional[Fragment]:
    """
    Namespace one raw SVG document.

    Returns None (after logging why) when the source cannot be used: not
    parseable, no <svg> element, or no way to tell its coordinate system.
    """
    data = source.encode("utf-8") if isinstance(source, str) else source
    try:
        document = etree.fromstring(data, parser=_parser())
    except (etree.XMLSyntaxError, ValueError) as exc:
        logging.warning("[sanitize] skipping %s: unparseable SVG (%s)", icon_name, exc)
        return None

    svg = _find_svg_root(document) if document is not None else None
    if svg is None:
        logging.warning("[sanitize] skipping %s: cannot find root <svg> tag", icon_name)
        return None

    view_box = resolve_view_box(svg)
    if view_box is None:
        logging.warning(
            "[sanitize] skipping %s: neither viewBox nor width/height attributes found", icon_name
        )
        return None
    if not svg.get("viewBox"):
        logging.info("[sanitize] %s has no viewBox, using inferred %s", icon_name, view_box)

    suffix = make_suffix(icon_name)
    namespace_tree(svg, suffix)
    return Fragment(icon_name=icon_name, markup=_inner_markup(svg), view_box=view_box, suffix=suffix)
