"""Normalize user-supplied source strings and classify them into fetch targets.

Known URL shapes (order matters: more specific first):

- weather portal content path, e.g.
  ``https://www.yr.no/en/content/61.1234,10.9876/meteogram.svg``
  -> rebuilt as a structured-forecast request by coordinate
- forecast API structured endpoint (``/weatherapi/locationforecast/2.0/complete``
  or ``/compact``) -> passed through unchanged
- forecast API legacy endpoint (``/weatherapi/locationforecast/2.0/classic``
  or the 1.x series) -> rebuilt from its ``lat``/``lon``/``altitude`` params
- anything else -> fetched verbatim as a raw vector document
"""

import logging
import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from urllib.parse import parse_qs, parse_qsl, unquote, urlencode, urlsplit, urlunsplit

from meteogram.config.defaults import FORECAST_API_HOST, FORECAST_API_PATH
from meteogram.models.errors import UnresolvableEndpoint
from meteogram.models.fetch import FetchTarget, TargetKind

logger = logging.getLogger(__name__)

WEATHER_PORTAL_HOSTS = frozenset({"yr.no", "www.yr.no", "beta.yr.no"})
CACHE_BUST_PARAM = "nocache"

_COORD = r"-?\d+(?:\.\d+)?"
_CONTENT_PATH_RE = re.compile(
    rf"/content/({_COORD}),({_COORD})/meteogram[^/]*/?$", re.IGNORECASE
)
_STRUCTURED_PATH_RE = re.compile(
    r"^/weatherapi/locationforecast/2\.0/(compact|complete)(\.json)?/?$",
    re.IGNORECASE,
)
_LEGACY_PATH_RE = re.compile(
    r"^/weatherapi/locationforecast/(2\.0/classic|1\.\d+)(\.xml)?/?$",
    re.IGNORECASE,
)
_HOST_RE = re.compile(r"^[a-z0-9.\-_]+$", re.IGNORECASE)
_FOUR_PLACES = Decimal("0.0001")


def _try_build(candidate: str) -> str | None:
    """Parse as an absolute URL and return its canonical form, or None."""
    try:
        parts = urlsplit(candidate)
        _ = parts.port  # raises ValueError for a malformed port
    except ValueError:
        return None
    host = parts.hostname
    if not parts.scheme or not parts.netloc or not host:
        return None
    if not (_HOST_RE.match(host) or ":" in host):
        return None
    netloc = parts.netloc
    userinfo, _, hostport = netloc.rpartition("@")
    hostport = hostport.lower()
    netloc = f"{userinfo}@{hostport}" if userinfo else hostport
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), netloc, path, parts.query, parts.fragment))


def normalize_url(raw: str | None) -> str | None:
    """Trim and canonicalize a source string.

    Tries the string as-is, then with ``https://`` and ``http://`` prefixes.
    If none parse, the trimmed string is returned unchanged. Empty input
    yields None.
    """
    if not raw:
        return None
    trimmed = raw.strip()
    if not trimmed:
        return None
    return (
        _try_build(trimmed)
        or _try_build(f"https://{trimmed}")
        or _try_build(f"http://{trimmed}")
        or trimmed
    )


def truncate_coordinate(value: float | str | None) -> str | None:
    """Round a coordinate to at most 4 decimal places and format it.

    Trailing zero digits are stripped, keeping one digit after the point
    (``61.5000`` -> ``61.5``, ``61.0000`` -> ``61.0``). Returns None for
    non-numeric or non-finite input.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None

    try:
        rounded = Decimal(repr(abs(number))).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    text = format(rounded, "f")
    if "." in text:
        text = text.rstrip("0")
        if text.endswith("."):
            text += "0"
    if number < 0 and rounded != 0:
        text = "-" + text
    return text


def build_forecast_url(lat: str, lon: str, altitude: str | None = None) -> str:
    """Build the canonical structured-forecast request URL."""
    params = [("lat", lat), ("lon", lon)]
    if altitude is not None:
        params.append(("altitude", altitude))
    return urlunsplit(("https", FORECAST_API_HOST, FORECAST_API_PATH, urlencode(params), ""))


def _altitude_param(query: dict[str, list[str]]) -> str | None:
    values = query.get("altitude")
    if not values:
        return None
    try:
        altitude = float(values[0])
    except ValueError:
        return None
    if not math.isfinite(altitude):
        return None
    return str(int(round(altitude)))


def _coordinates(lat_raw: str, lon_raw: str) -> tuple[str, str]:
    lat = truncate_coordinate(lat_raw)
    lon = truncate_coordinate(lon_raw)
    if lat is None or lon is None:
        raise ValueError(f"Unusable coordinates: {lat_raw!r}, {lon_raw!r}")
    return lat, lon


def _classify(url: str) -> FetchTarget:
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    path = unquote(parts.path)
    query = parse_qs(parts.query)

    if host in WEATHER_PORTAL_HOSTS:
        m = _CONTENT_PATH_RE.search(path)
        if m is not None:
            lat, lon = _coordinates(m.group(1), m.group(2))
            return FetchTarget(
                request_url=build_forecast_url(lat, lon, _altitude_param(query)),
                kind=TargetKind.STRUCTURED_FORECAST,
            )

    if host == FORECAST_API_HOST:
        if _STRUCTURED_PATH_RE.match(path):
            return FetchTarget(request_url=url, kind=TargetKind.STRUCTURED_FORECAST)
        if _LEGACY_PATH_RE.match(path):
            lat_values = query.get("lat")
            lon_values = query.get("lon")
            if not lat_values or not lon_values:
                raise ValueError("Legacy forecast URL without lat/lon")
            lat, lon = _coordinates(lat_values[0], lon_values[0])
            return FetchTarget(
                request_url=build_forecast_url(lat, lon, _altitude_param(query)),
                kind=TargetKind.STRUCTURED_FORECAST,
            )

    return FetchTarget(request_url=url, kind=TargetKind.RAW_VECTOR)


def resolve_fetch_target(normalized_url: str | None) -> FetchTarget:
    """Classify a normalized URL into a concrete fetch target.

    Never fails for non-empty input: anything unrecognized, or any parse
    problem during classification, yields a raw-vector target for the
    URL as given.
    """
    if not normalized_url:
        raise UnresolvableEndpoint("No source URL configured.")
    try:
        return _classify(normalized_url)
    except ValueError as e:
        logger.warning("Could not classify %s (%s), fetching verbatim", normalized_url, e)
        return FetchTarget(request_url=normalized_url, kind=TargetKind.RAW_VECTOR)


def with_cache_buster(url: str, token: str) -> str:
    """Set the cache-busting query parameter, replacing any existing one."""
    try:
        parts = urlsplit(url)
    except ValueError:
        sep = "&" if "?" in url else "?"
        return f"{url}{sep}{CACHE_BUST_PARAM}={token}"
    query = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != CACHE_BUST_PARAM
    ]
    query.append((CACHE_BUST_PARAM, token))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))

