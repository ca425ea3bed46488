"""Map opaque weather symbol codes to a small set of rendering categories."""

import re
from collections.abc import Callable

from meteogram.models.chart import WeatherCategory

_SUFFIX_RE = re.compile(r"_(day|night|polartwilight)$")
_THUNDER_RE = re.compile(r"(and)?thunder(storm)?")


def _matches(pattern: str) -> Callable[[str], bool]:
    compiled = re.compile(pattern)
    return lambda code: compiled.search(code) is not None


# Priority order matters: sleet before snow before rain, etc.
CATEGORY_RULES: list[tuple[Callable[[str], bool], WeatherCategory]] = [
    (_matches(r"sleet"), WeatherCategory.SLEET),
    (_matches(r"snow|hail"), WeatherCategory.SNOW),
    (_matches(r"rain|drizzle|shower"), WeatherCategory.RAIN),
    (_matches(r"fog|mist|haze"), WeatherCategory.FOG),
    (_matches(r"partly|fair"), WeatherCategory.PARTLY),
    (_matches(r"cloud"), WeatherCategory.CLOUDY),
    (_matches(r"clear|sun"), WeatherCategory.CLEAR),
]


def normalize_symbol_code(code: str) -> str:
    """Lower-case and strip day/night/polartwilight and thunder suffixes."""
    code = code.strip().lower()
    code = _SUFFIX_RE.sub("", code)
    return _THUNDER_RE.sub("", code)


def classify_symbol(code: str | None) -> WeatherCategory:
    """Classify a symbol code.

    Unknown non-empty codes fall back to PARTLY, absent codes to CLOUDY.
    """
    if code is None or not code.strip():
        return WeatherCategory.CLOUDY
    normalized = normalize_symbol_code(code)
    for predicate, category in CATEGORY_RULES:
        if predicate(normalized):
            return category
    return WeatherCategory.PARTLY
