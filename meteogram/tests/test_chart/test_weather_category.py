"""Tests for symbol-code classification and glyph composition."""

import pytest

from meteogram.chart.glyphs import weather_glyph
from meteogram.chart.weather_category import classify_symbol, normalize_symbol_code
from meteogram.models.chart import WeatherCategory


class TestClassifySymbol:
    @pytest.mark.parametrize(
        "code,expected",
        [
            ("clearsky_day", WeatherCategory.CLEAR),
            ("fair_night", WeatherCategory.PARTLY),
            ("partlycloudy_polartwilight", WeatherCategory.PARTLY),
            ("cloudy", WeatherCategory.CLOUDY),
            ("lightrain", WeatherCategory.RAIN),
            ("rainshowers_day", WeatherCategory.RAIN),
            ("heavyrainandthunder", WeatherCategory.RAIN),
            ("lightsleetshowers_day", WeatherCategory.SLEET),
            ("heavysleetshowersandthunder_night", WeatherCategory.SLEET),
            ("snowandthunder", WeatherCategory.SNOW),
            ("lightssnowshowersandthunder_day", WeatherCategory.SNOW),
            ("fog", WeatherCategory.FOG),
        ],
    )
    def test_known_codes(self, code, expected):
        assert classify_symbol(code) == expected

    def test_unknown_code_is_partly(self):
        assert classify_symbol("mystery_weather") == WeatherCategory.PARTLY

    @pytest.mark.parametrize("code", [None, "", "   "])
    def test_absent_code_is_cloudy(self, code):
        assert classify_symbol(code) == WeatherCategory.CLOUDY

    def test_normalize_strips_suffixes(self):
        assert normalize_symbol_code("RainAndThunder_Day") == "rain"
        assert normalize_symbol_code("partlycloudy_polartwilight") == "partlycloudy"


class TestWeatherGlyph:
    def test_clear_is_sun_only(self):
        svg = weather_glyph(WeatherCategory.CLEAR, 10, 10, 30)
        assert "glyph-sun" in svg
        assert "glyph-cloud" not in svg

    def test_rain_uses_rain_color(self):
        svg = weather_glyph(WeatherCategory.RAIN, 10, 10, 30, rain_color="#123456")
        assert "glyph-cloud" in svg
        assert svg.count("glyph-drop") == 2
        assert "#123456" in svg

    def test_sleet_mixes_drop_and_flake(self):
        svg = weather_glyph(WeatherCategory.SLEET, 10, 10, 30)
        assert "glyph-drop" in svg
        assert "glyph-snow" in svg

    def test_glyph_scales_with_size(self):
        assert weather_glyph(WeatherCategory.FOG, 0, 0, 30) != weather_glyph(WeatherCategory.FOG, 0, 0, 60)
