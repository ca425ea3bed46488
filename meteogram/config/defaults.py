"""Built-in defaults: client identification and the placeholder chart."""

DEFAULT_USER_AGENT = "meteogram/0.1.0 (https://github.com/meteogram/meteogram)"

FORECAST_API_HOST = "api.met.no"
FORECAST_API_PATH = "/weatherapi/locationforecast/2.0/complete"

DEFAULT_METEOGRAM_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 900 340">'
    '<rect x="0" y="0" width="900" height="340" fill="#f4f6f7"/>'
    '<g fill="none" stroke="#c3d0d8" stroke-width="1">'
    '<path d="M 60 60 L 840 60"/>'
    '<path d="M 60 140 L 840 140"/>'
    '<path d="M 60 220 L 840 220"/>'
    '<path d="M 60 300 L 840 300"/>'
    "</g>"
    '<text x="450" y="176" text-anchor="middle" font-family="sans-serif" '
    'font-size="18" fill="#56616c">Meteogram unavailable</text>'
    "</svg>"
)
