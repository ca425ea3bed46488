"""Assemble chart geometry into a self-contained SVG document."""

import html
from collections.abc import Sequence

from meteogram.chart.glyphs import fmt, weather_glyph
from meteogram.config.schema import ChartConfig, StyleConfig
from meteogram.models.chart import ChartGeometry

SVG_NS = "http://www.w3.org/2000/svg"
HATCH_ID = "max-precip-hatch"
GLYPH_SIZE = 30.0
SERVED_BY = "Data: MET Norway"

LEGEND = (
    ("temperature_line_color", "Temperature °C", ""),
    ("precipitation_bar_color", "Precipitation mm", ""),
    ("wind_line_color", "Wind m/s", ""),
    ("wind_gust_line_color", "Gust m/s", "4 3"),
)


def _esc(text: str) -> str:
    return html.escape(text, quote=True)


def _text(x: float, y: float, text: str, cls: str, fill: str, anchor: str = "start", size: int = 11) -> str:
    return (
        f'<text class="{cls}" x="{fmt(x)}" y="{fmt(y)}" text-anchor="{anchor}" '
        f'font-size="{size}" fill="{fill}">{_esc(text)}</text>'
    )


def _tick(value: float) -> str:
    return f"{value:g}"


def line_path(xs: Sequence[float], ys: Sequence[float | None]) -> str:
    """Path data through the defined points; gaps start a new subpath."""
    commands = []
    pen_down = False
    for x, y in zip(xs, ys):
        if y is None:
            pen_down = False
            continue
        commands.append(f"{'L' if pen_down else 'M'} {fmt(x)} {fmt(y)}")
        pen_down = True
    return " ".join(commands)


def _defs(style: StyleConfig) -> str:
    color = style.max_precipitation_color
    return (
        "<defs>"
        f'<pattern id="{HATCH_ID}" patternUnits="userSpaceOnUse" width="4" height="4" '
        'patternTransform="rotate(45)">'
        f'<rect x="0" y="0" width="1.5" height="4" fill="{color}" fill-opacity="0.6"/>'
        "</pattern>"
        "</defs>"
    )


def _header(g: ChartGeometry, style: StyleConfig, chart: ChartConfig) -> list[str]:
    pad = style.padding
    parts = []
    if g.title:
        parts.append(_text(pad, pad + 16, g.title, "location-header", style.main_text_color, size=14))
    x = chart.width - pad
    for attr, label, dash in reversed(LEGEND):
        color = getattr(style, attr)
        label_w = len(label) * 6.2
        parts.append(_text(x, pad + 14, label, "legend-label", style.secondary_text_color, anchor="end"))
        x -= label_w + 4
        dash_attr = f' stroke-dasharray="{dash}"' if dash else ""
        parts.append(
            f'<path d="M {fmt(x - 14)} {fmt(pad + 10)} L {fmt(x)} {fmt(pad + 10)}" '
            f'stroke="{color}" stroke-width="2"{dash_attr}/>'
        )
        x -= 26
    return parts


def _grid(g: ChartGeometry, style: StyleConfig) -> list[str]:
    p = g.plot
    lines = []
    for tick in g.temp_ticks:
        y = p.top + p.height * (1 - (tick - g.domains.temp_min) / g.domains.temp_range)
        lines.append(f'<path d="M {fmt(p.left)} {fmt(y)} L {fmt(p.right)} {fmt(y)}"/>')
    for x in g.day_boundaries:
        lines.append(f'<path class="day-boundary" d="M {fmt(x)} {fmt(p.top - 18)} L {fmt(x)} {fmt(p.bottom)}"/>')
    lines.append(f'<path d="M {fmt(p.left)} {fmt(p.bottom)} L {fmt(p.right)} {fmt(p.bottom)}"/>')
    return [
        f'<g class="grid" fill="none" stroke="{style.grid_line_color}" '
        f'stroke-width="{fmt(style.grid_line_width)}" stroke-opacity="{fmt(style.grid_line_opacity)}">'
        + "".join(lines)
        + "</g>"
    ]


def _axes(g: ChartGeometry, style: StyleConfig) -> list[str]:
    p = g.plot
    d = g.domains
    parts = []
    for tick in g.temp_ticks:
        y = p.top + p.height * (1 - (tick - d.temp_min) / d.temp_range)
        parts.append(_text(p.left - 6, y + 4, f"{_tick(tick)}°", "y-axis-label", style.temperature_line_color, anchor="end"))

    for k in range(5):
        value = d.wind_scale_max * k / 4
        y = p.top + p.height * (1 - k / 4)
        parts.append(_text(p.right + 6, y + 4, _tick(round(value, 1)), "y-axis-label", style.wind_line_color))

    steps = int(round(d.precip_scale_max / d.precip_step))
    for k in range(1, steps + 1):
        value = round(d.precip_step * k, 6)
        y = p.top + p.height * (1 - value / d.precip_scale_max)
        parts.append(_text(p.right + 30, y + 4, _tick(value), "y-axis-label", style.precipitation_bar_color))

    parts.append(_text(p.left - 6, p.top - 24, "°C", "y-axis-label", style.y_axis_icon_color, anchor="end"))
    parts.append(_text(p.right + 6, p.top - 24, "m/s", "y-axis-label", style.y_axis_icon_color))
    parts.append(_text(p.right + 30, p.top - 24, "mm", "y-axis-label", style.y_axis_icon_color))
    return parts


def _days(g: ChartGeometry, style: StyleConfig) -> list[str]:
    return [
        _text(day.x_center, g.plot.top - 6, day.label, "day-label", style.main_text_color, anchor="middle", size=12)
        for day in g.days
    ]


def _bars(g: ChartGeometry, style: StyleConfig) -> list[str]:
    parts = []
    for bar in g.bars:
        if bar.max_y is not None and bar.max_y < bar.y:
            parts.append(
                f'<rect class="precip-max" x="{fmt(bar.x)}" y="{fmt(bar.max_y)}" '
                f'width="{fmt(bar.width)}" height="{fmt(bar.y - bar.max_y)}" fill="url(#{HATCH_ID})"/>'
            )
        if bar.height > 0:
            parts.append(
                f'<rect class="precip" x="{fmt(bar.x)}" y="{fmt(bar.y)}" width="{fmt(bar.width)}" '
                f'height="{fmt(bar.height)}" fill="{style.precipitation_bar_color}"/>'
            )
        if bar.over_max_label:
            parts.append(
                _text(bar.x + bar.width / 2, bar.y - 3, bar.over_max_label, "precip-over-max",
                      style.precipitation_bar_color, anchor="middle", size=9)
            )
    return parts


def _series(g: ChartGeometry, style: StyleConfig) -> list[str]:
    parts = []
    for ys, color, width, dash in (
        (g.gust_ys, style.wind_gust_line_color, 1.0, "4 3"),
        (g.wind_ys, style.wind_line_color, 1.5, ""),
        (g.temp_ys, style.temperature_line_color, 2.5, ""),
    ):
        d = line_path(g.xs, ys)
        if not d:
            continue
        if g.degenerate:
            y = next(v for v in ys if v is not None)
            parts.append(f'<circle cx="{fmt(g.xs[0])}" cy="{fmt(y)}" r="{fmt(width * 1.5)}" fill="{color}"/>')
            continue
        dash_attr = f' stroke-dasharray="{dash}"' if dash else ""
        parts.append(
            f'<path d="{d}" fill="none" stroke="{color}" stroke-width="{fmt(width)}" '
            f'stroke-linejoin="round" stroke-linecap="round"{dash_attr}/>'
        )
    return parts


def _glyphs(g: ChartGeometry, style: StyleConfig) -> list[str]:
    p = g.plot
    parts = []
    half = GLYPH_SIZE / 2
    for i in g.sample_indices:
        ty = g.temp_ys[i]
        cy = p.top + half if ty is None else ty - GLYPH_SIZE * 0.8
        cy = min(max(cy, p.top + half), p.bottom - half)
        parts.append(weather_glyph(g.categories[i], g.xs[i], cy, GLYPH_SIZE, style.precipitation_bar_color))
    return parts


def _footer(g: ChartGeometry, style: StyleConfig, chart: ChartConfig) -> list[str]:
    p = g.plot
    parts = []
    for i in g.sample_indices:
        x = g.xs[i]
        parts.append(_text(x, p.bottom + 14, g.hour_labels[i], "hour-label", style.secondary_text_color, anchor="middle", size=10))
        direction = g.wind_directions[i] if i < len(g.wind_directions) else None
        if direction is None:
            continue
        # arrow points where the wind blows to
        parts.append(
            f'<path class="wind-arrow" d="M 0 -6 L 4 4 L 0 2 L -4 4 Z" fill="{style.y_axis_icon_color}" '
            f'transform="translate({fmt(x)} {fmt(p.bottom + 28)}) rotate({fmt((direction + 180) % 360)})"/>'
        )
    parts.append(
        _text(chart.width - style.padding, chart.height - style.padding, SERVED_BY,
              "served-by-header", style.logo_color, anchor="end", size=9)
    )
    return parts


def render_svg(
    geometry: ChartGeometry,
    style: StyleConfig | None = None,
    chart: ChartConfig | None = None,
) -> str:
    """Render the full meteogram document."""
    style = style or StyleConfig()
    chart = chart or ChartConfig()
    parts = [
        f'<svg xmlns="{SVG_NS}" viewBox="0 0 {chart.width} {chart.height}" '
        'preserveAspectRatio="xMidYMid meet" font-family="sans-serif">',
        _defs(style),
        f'<rect class="background" x="0" y="0" width="{chart.width}" height="{chart.height}" '
        f'fill="{style.overall_background}"/>',
    ]
    parts += _header(geometry, style, chart)
    parts += _grid(geometry, style)
    parts += _axes(geometry, style)
    parts += _days(geometry, style)
    parts += _bars(geometry, style)
    parts += _series(geometry, style)
    parts += _glyphs(geometry, style)
    parts += _footer(geometry, style, chart)
    parts.append("</svg>")
    return "".join(parts)


def location_title(latitude: float | None, longitude: float | None) -> str:
    if latitude is None or longitude is None:
        return ""
    ns = "N" if latitude >= 0 else "S"
    ew = "E" if longitude >= 0 else "W"
    return f"{abs(latitude):.4f}°{ns} {abs(longitude):.4f}°{ew}"
