"""Procedural weather glyphs. Every glyph scales with a single ``size`` value."""

from meteogram.models.chart import WeatherCategory

SUN_COLOR = "#ffb900"
CLOUD_FILL = "#dfe4e8"
CLOUD_STROKE = "#8e9aa3"
SNOW_COLOR = "#5fa8d3"
FOG_COLOR = "#9aa5ad"
RAIN_COLOR = "#006edb"


def fmt(value: float) -> str:
    """Fixed two-decimal formatting for deterministic output."""
    return f"{value:.2f}"


def sun(cx: float, cy: float, size: float) -> str:
    r = size * 0.2
    rays = []
    for k in range(8):
        rays.append(
            f'<path d="M 0 {fmt(-r * 1.45)} L 0 {fmt(-r * 2.05)}" '
            f'transform="rotate({k * 45})"/>'
        )
    return (
        f'<g class="glyph-sun" transform="translate({fmt(cx)} {fmt(cy)})">'
        f'<g stroke="{SUN_COLOR}" stroke-width="{fmt(size * 0.06)}" stroke-linecap="round">'
        + "".join(rays)
        + "</g>"
        f'<circle cx="0" cy="0" r="{fmt(r)}" fill="{SUN_COLOR}"/>'
        "</g>"
    )


def cloud(cx: float, cy: float, size: float, fill: str = CLOUD_FILL) -> str:
    s = size
    lobes = (
        (-0.2 * s, 0.02 * s, 0.16 * s),
        (0.0, -0.08 * s, 0.22 * s),
        (0.22 * s, 0.04 * s, 0.14 * s),
    )
    circles = "".join(
        f'<circle cx="{fmt(x)}" cy="{fmt(y)}" r="{fmt(r)}"/>' for x, y, r in lobes
    )
    return (
        f'<g class="glyph-cloud" transform="translate({fmt(cx)} {fmt(cy)})" '
        f'fill="{fill}" stroke="{CLOUD_STROKE}" stroke-width="{fmt(s * 0.03)}">'
        + circles
        + f'<rect x="{fmt(-0.36 * s)}" y="{fmt(0.02 * s)}" width="{fmt(0.72 * s)}" '
        f'height="{fmt(0.16 * s)}" rx="{fmt(0.08 * s)}" stroke="none"/>'
        "</g>"
    )


def raindrop(cx: float, cy: float, size: float, color: str = RAIN_COLOR) -> str:
    h = size * 0.14
    w = size * 0.07
    return (
        f'<path class="glyph-drop" fill="{color}" d="M {fmt(cx)} {fmt(cy - h)} '
        f"C {fmt(cx + w)} {fmt(cy)} {fmt(cx + w)} {fmt(cy + h * 0.8)} {fmt(cx)} {fmt(cy + h * 0.8)} "
        f'C {fmt(cx - w)} {fmt(cy + h * 0.8)} {fmt(cx - w)} {fmt(cy)} {fmt(cx)} {fmt(cy - h)} Z"/>'
    )


def snowflake(cx: float, cy: float, size: float, color: str = SNOW_COLOR) -> str:
    arm = size * 0.12
    spokes = "".join(
        f'<path d="M 0 {fmt(-arm)} L 0 {fmt(arm)}" transform="rotate({k * 45})"/>'
        for k in range(4)
    )
    return (
        f'<g class="glyph-snow" transform="translate({fmt(cx)} {fmt(cy)})" '
        f'stroke="{color}" stroke-width="{fmt(size * 0.04)}" stroke-linecap="round">'
        + spokes
        + "</g>"
    )


def fog(cx: float, cy: float, size: float) -> str:
    bands = []
    for k, (offset, half) in enumerate(((-0.16, 0.3), (0.0, 0.36), (0.16, 0.26))):
        shift = 0.04 * size if k == 1 else 0.0
        bands.append(
            f'<path d="M {fmt(cx - half * size + shift)} {fmt(cy + offset * size)} '
            f'L {fmt(cx + half * size + shift)} {fmt(cy + offset * size)}"/>'
        )
    return (
        f'<g class="glyph-fog" stroke="{FOG_COLOR}" stroke-width="{fmt(size * 0.06)}" '
        f'stroke-linecap="round">' + "".join(bands) + "</g>"
    )


def weather_glyph(
    category: WeatherCategory, cx: float, cy: float, size: float, rain_color: str = RAIN_COLOR
) -> str:
    """Compose the glyph for a weather category centered on (cx, cy)."""
    if category == WeatherCategory.CLEAR:
        return sun(cx, cy, size)
    if category == WeatherCategory.PARTLY:
        return sun(cx - size * 0.15, cy - size * 0.15, size * 0.8) + cloud(
            cx + size * 0.08, cy + size * 0.08, size * 0.8
        )
    if category == WeatherCategory.FOG:
        return fog(cx, cy, size)

    body = cloud(cx, cy - size * 0.12, size)
    below = cy + size * 0.3
    if category == WeatherCategory.RAIN:
        body += raindrop(cx - size * 0.16, below, size, rain_color)
        body += raindrop(cx + size * 0.12, below, size, rain_color)
    elif category == WeatherCategory.SNOW:
        body += snowflake(cx - size * 0.16, below, size)
        body += snowflake(cx + size * 0.16, below, size)
    elif category == WeatherCategory.SLEET:
        body += raindrop(cx - size * 0.16, below, size, rain_color)
        body += snowflake(cx + size * 0.16, below, size)
    return body
