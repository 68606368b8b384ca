"""
icons_compositor.py
-------------------
Lays sanitized icon fragments out on a grid and produces the final image.

Every icon gets a fixed square cell: a rounded background rect with the icon
scaled into a centered, smaller box (`preserveAspectRatio="xMidYMid meet"`, so
nothing is cropped or stretched whatever the icon's native aspect ratio).

Canvas size is exact: `columns * display + (columns - 1) * gap` wide and the
same for rows, 0 when there are no cells.

Dependencies (runtime):
- cairosvg (WEBP output only; needs the system cairo library)
- Pillow (WEBP output only)
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass
from typing import Iterator, List, Sequence

from PIL import Image

from icons_sanitizer import Fragment

# Optional at import time: cairosvg binds to libcairo, which is not present on
# every host. Only the raster path needs it.
try:
    import cairosvg  # type: ignore
    _HAS_CAIROSVG = True
except Exception:  # pragma: no cover
    cairosvg = None
    _HAS_CAIROSVG = False

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"

SVG_MEDIA_TYPE = "image/svg+xml"
WEBP_MEDIA_TYPE = "image/webp"


class CompositionError(Exception):
    """The final image could not be assembled or encoded."""


@dataclass(frozen=True)
class CellStyle:
    display_size: int = 48
    content_size: int = 36
    gap: int = 8
    background: str = "rgb(36, 41, 56)"
    radius: float = 10

    @property
    def padding(self) -> float:
        return (self.display_size - self.content_size) / 2

    @classmethod
    def from_settings(cls, settings) -> "CellStyle":
        return cls(
            display_size=settings.display_size,
            content_size=settings.content_size,
            gap=settings.gap,
            background=settings.background,
            radius=settings.radius,
        )


@dataclass(frozen=True)
class LayoutCell:
    icon_name: str
    column: int
    row: int
    x: int
    y: int


@dataclass(frozen=True)
class GridLayout:
    cells: List[LayoutCell]
    columns: int
    rows: int
    width: int
    height: int

    def __iter__(self) -> Iterator[LayoutCell]:
        return iter(self.cells)

    def __len__(self) -> int:
        return len(self.cells)


@dataclass(frozen=True)
class CompositeImage:
    data: bytes
    media_type: str
    width: int
    height: int


def _extent(count: int, size: int, gap: int) -> int:
    return count * size + (count - 1) * gap if count > 0 else 0


def compute_layout(names: Sequence[str], per_row: int, style: CellStyle = CellStyle()) -> GridLayout:
    """Row-major placement of `names`; `per_row` must already be validated (>= 1)."""
    if per_row < 1:
        raise ValueError("per_row must be >= 1")
    total = len(names)
    step = style.display_size + style.gap
    cells = []
    for index, name in enumerate(names):
        column = index % per_row
        row = index // per_row
        cells.append(LayoutCell(icon_name=name, column=column, row=row, x=column * step, y=row * step))

    columns = min(per_row, total)
    rows = math.ceil(total / per_row)
    return GridLayout(
        cells=cells,
        columns=columns,
        rows=rows,
        width=_extent(columns, style.display_size, style.gap),
        height=_extent(rows, style.display_size, style.gap),
    )


def row_per_row(count: int) -> int:
    """Bound that puts `count` cells on a single row."""
    return max(count, 1)


def _fmt(value: float) -> str:
    return str(int(value)) if value == int(value) else f"{value:g}"


def render_cell(fragment: Fragment, style: CellStyle = CellStyle(), standalone: bool = False) -> str:
    size = style.display_size
    radius = _fmt(style.radius)
    pad = _fmt(style.padding)
    namespaces = f' xmlns="{SVG_NS}" xmlns:xlink="{XLINK_NS}"' if standalone else ""
    return (
        f'<svg width="{size}" height="{size}" viewBox="0 0 {size} {size}"{namespaces}>'
        f'<rect x="0" y="0" width="{size}" height="{size}" rx="{radius}" ry="{radius}" fill="{style.background}"/>'
        f'<svg x="{pad}" y="{pad}" width="{style.content_size}" height="{style.content_size}" '
        f'viewBox="{fragment.view_box}" preserveAspectRatio="xMidYMid meet">'
        f"{fragment.markup}"
        "</svg>"
        "</svg>"
    )


def compose_svg(fragments: Sequence[Fragment], per_row: int, style: CellStyle = CellStyle()) -> CompositeImage:
    layout = compute_layout([f.icon_name for f in fragments], per_row, style)
    groups = "".join(
        f'<g transform="translate({cell.x},{cell.y})">{render_cell(fragment, style)}</g>'
        for cell, fragment in zip(layout, fragments)
    )
    document = (
        f'<svg width="{layout.width}" height="{layout.height}" viewBox="0 0 {layout.width} {layout.height}" '
        f'xmlns="{SVG_NS}" xmlns:xlink="{XLINK_NS}">{groups}</svg>'
    )
    return CompositeImage(
        data=document.encode("utf-8"),
        media_type=SVG_MEDIA_TYPE,
        width=layout.width,
        height=layout.height,
    )


def svg_to_png(svg: str, size_px: int) -> bytes:
    """
    Render SVG to PNG bytes of size size_px x size_px. Requires cairosvg.
    If cairosvg is not available, raises RuntimeError.
    """
    if not _HAS_CAIROSVG:  # pragma: no cover
        raise RuntimeError("cairosvg is not installed. Install with `pip install cairosvg`.")
    return cairosvg.svg2png(bytestring=svg.encode("utf-8"), output_width=size_px, output_height=size_px)


def rasterize_cell(fragment: Fragment, style: CellStyle = CellStyle()) -> Image.Image:
    png = svg_to_png(render_cell(fragment, style, standalone=True), style.display_size)
    with Image.open(io.BytesIO(png)) as im:
        cell = im.convert("RGBA")
    if cell.size != (style.display_size, style.display_size):
        cell = cell.resize((style.display_size, style.display_size), resample=Image.LANCZOS)
    return cell


def compose_webp(
    fragments: Sequence[Fragment],
    per_row: int,
    style: CellStyle = CellStyle(),
    quality: int = 90,
    lossless: bool = False,
) -> CompositeImage:
    """
    Rasterize each cell on its own and paste it onto a transparent canvas.

    An empty icon list gives a 1x1 transparent image: WEBP cannot encode 0x0.
    """
    layout = compute_layout([f.icon_name for f in fragments], per_row, style)
    try:
        canvas = Image.new("RGBA", (max(layout.width, 1), max(layout.height, 1)), (0, 0, 0, 0))
        for cell, fragment in zip(layout, fragments):
            canvas.alpha_composite(rasterize_cell(fragment, style), dest=(cell.x, cell.y))
        out = io.BytesIO()
        canvas.save(out, format="WEBP", quality=quality, lossless=lossless)
    except Exception as exc:
        raise CompositionError(f"WEBP composition failed: {exc}") from exc
    return CompositeImage(
        data=out.getvalue(),
        media_type=WEBP_MEDIA_TYPE,
        width=canvas.width,
        height=canvas.height,
    )


def compose(
    fragments: Sequence[Fragment],
    per_row: int,
    output: str = "svg",
    style: CellStyle = CellStyle(),
    quality: int = 90,
    lossless: bool = False,
) -> CompositeImage:
    if output == "webp":
        return compose_webp(fragments, per_row, style, quality=quality, lossless=lossless)
    if output == "svg":
        return compose_svg(fragments, per_row, style)
    raise ValueError(f"Unsupported output format: {output}")
