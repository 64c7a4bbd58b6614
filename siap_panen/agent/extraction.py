"""Entity extraction and tool parameter derivation.

Extraction sits behind the ``EntityExtractor`` protocol so a statistical NLU
component can replace the regex rules without touching planning or
orchestration. Every field keeps an explicit literal default.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..domain.catalog import (
    CITY_ALIASES,
    CROPS,
    DEFAULT_COMPARISON_CITIES,
    MONTHS,
    find_cities,
    find_products,
)
from ..schemas import ContextAnalysis


DEFAULT_CROP = "padi"
DEFAULT_PRODUCT = "padi"
DEFAULT_WEATHER_LOCATION = "Bandung"
DEFAULT_MARKET_LOCATION = "Jakarta"
DEFAULT_AREA_HA = 1.0
DEFAULT_DOSE_KG_PER_HA = 300.0
DEFAULT_WATER_L_PER_HA = 1000.0
DEFAULT_QUANTITY_KG = 100.0
DEFAULT_COST_PER_KG = 2000.0
DEFAULT_TOP_LIMIT = 5


def _alternation(words: List[str]) -> str:
    ordered = sorted(words, key=len, reverse=True)
    return "|".join(re.escape(word) for word in ordered)


LOCATION_PATTERN = re.compile(rf"\b({_alternation(list(CITY_ALIASES))})\b")
CROP_PATTERN = re.compile(rf"\b({_alternation(CROPS)})\b")
NUMBER_PATTERN = re.compile(r"\d+(?:[.,]\d+)*")
QUANTITY_PATTERN = re.compile(r"(\d+(?:[.,]\d+)*)\s*(kg|kilo|ton|kuintal)\b")
COST_PATTERN = re.compile(r"(?:biaya|modal)\D{0,30}?(\d+(?:[.,]\d+)*)")
LIMIT_PATTERN = re.compile(r"top\s*(\d+)|(\d+)\s*(?:produk|komoditas|teratas)")
THOUSANDS_PATTERN = re.compile(r"^\d{1,3}(?:\.\d{3})+$")
UNIT_FACTORS = {"kg": 1.0, "kilo": 1.0, "kuintal": 100.0, "ton": 1000.0}


def parse_number(raw: str) -> Optional[float]:
    """Parse "2", "1,5", "2.5" and Indonesian thousands like "5.000"."""
    text = (raw or "").strip()
    if not text:
        return None
    if THOUSANDS_PATTERN.match(text):
        text = text.replace(".", "")
    elif "." in text and "," in text:
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return None


class EntityExtractor(Protocol):
    def location(self, text: str) -> Optional[str]: ...

    def cities(self, text: str) -> List[str]: ...

    def crop(self, text: str) -> Optional[str]: ...

    def product(self, text: str) -> Optional[str]: ...

    def numbers(self, text: str) -> List[float]: ...

    def quantity_kg(self, text: str) -> Optional[float]: ...

    def cost_per_kg(self, text: str) -> Optional[float]: ...

    def month(self, text: str, today: date) -> Optional[int]: ...

    def limit(self, text: str) -> Optional[int]: ...


class RegexEntityExtractor:
    """Fixed-alternation regex extraction over lower-cased text."""

    def location(self, text: str) -> Optional[str]:
        match = LOCATION_PATTERN.search(text)
        return CITY_ALIASES[match.group(1)] if match else None

    def cities(self, text: str) -> List[str]:
        return find_cities(text)

    def crop(self, text: str) -> Optional[str]:
        match = CROP_PATTERN.search(text)
        return match.group(1) if match else None

    def product(self, text: str) -> Optional[str]:
        products = find_products(text)
        return products[0] if products else None

    def numbers(self, text: str) -> List[float]:
        values = [parse_number(raw) for raw in NUMBER_PATTERN.findall(text)]
        return [value for value in values if value is not None]

    def quantity_kg(self, text: str) -> Optional[float]:
        match = QUANTITY_PATTERN.search(text)
        if not match:
            return None
        value = parse_number(match.group(1))
        if value is None:
            return None
        return value * UNIT_FACTORS[match.group(2)]

    def cost_per_kg(self, text: str) -> Optional[float]:
        match = COST_PATTERN.search(text)
        return parse_number(match.group(1)) if match else None

    def month(self, text: str, today: date) -> Optional[int]:
        if "bulan depan" in text:
            return today.month % 12 + 1
        for name, number in MONTHS.items():
            if re.search(rf"\b{name}\b", text):
                return number
        return None

    def limit(self, text: str) -> Optional[int]:
        match = LIMIT_PATTERN.search(text)
        if not match:
            return None
        return int(match.group(1) or match.group(2))


class ToolParameterBuilder:
    """Turn a query plus its analysis into concrete tool parameters."""

    def __init__(
        self,
        extractor: Optional[EntityExtractor] = None,
        *,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._extractor = extractor or RegexEntityExtractor()
        self._clock = clock
        self._builders: Dict[str, Callable[[str, ContextAnalysis], Dict[str, Any]]] = {
            "cekCuaca": self._weather,
            "buatJadwalTanam": self._planting,
            "hitungKebutuhan": self._requirements,
            "cekHargaPasar": self._market_price,
            "bandingHargaKota": self._city_comparison,
            "hitungKeuntungan": self._profit,
            "prediksiHargaMusim": self._seasonal_forecast,
            "produkHargaTertinggi": self._top_products,
        }

    def build(self, tool_name: str, query: str, analysis: ContextAnalysis) -> Dict[str, Any]:
        builder = self._builders.get(tool_name)
        if builder is None:
            return {}
        return builder((query or "").lower(), analysis)

    def _market_location(self, text: str, analysis: ContextAnalysis) -> str:
        return (
            self._extractor.location(text)
            or analysis.user_location
            or DEFAULT_MARKET_LOCATION
        )

    def _product(self, text: str, analysis: ContextAnalysis) -> str:
        if analysis.detected_products:
            return analysis.detected_products[0]
        return self._extractor.product(text) or DEFAULT_PRODUCT

    def _weather(self, text: str, analysis: ContextAnalysis) -> Dict[str, Any]:
        location = (
            self._extractor.location(text)
            or analysis.user_location
            or DEFAULT_WEATHER_LOCATION
        )
        return {"lokasi": location}

    def _planting(self, text: str, analysis: ContextAnalysis) -> Dict[str, Any]:
        return {
            "tanaman": self._extractor.crop(text) or DEFAULT_CROP,
            "tanggal": self._clock().isoformat(),
        }

    def _requirements(self, text: str, analysis: ContextAnalysis) -> Dict[str, Any]:
        numbers = self._extractor.numbers(text)
        padded = numbers + [0.0] * (3 - len(numbers))
        return {
            "luasHa": padded[0] or DEFAULT_AREA_HA,
            "dosisKgPerHa": padded[1] or DEFAULT_DOSE_KG_PER_HA,
            "airLiterPerHa": padded[2] or DEFAULT_WATER_L_PER_HA,
        }

    def _market_price(self, text: str, analysis: ContextAnalysis) -> Dict[str, Any]:
        return {
            "produk": self._product(text, analysis),
            "lokasi": self._market_location(text, analysis),
        }

    def _city_comparison(self, text: str, analysis: ContextAnalysis) -> Dict[str, Any]:
        cities = self._extractor.cities(text)
        if len(cities) < 2:
            cities = cities + [c for c in DEFAULT_COMPARISON_CITIES if c not in cities]
        return {"produk": self._product(text, analysis), "kota": cities}

    def _profit(self, text: str, analysis: ContextAnalysis) -> Dict[str, Any]:
        return {
            "produk": self._product(text, analysis),
            "jumlahKg": self._extractor.quantity_kg(text) or DEFAULT_QUANTITY_KG,
            "biayaProduksiPerKg": self._extractor.cost_per_kg(text) or DEFAULT_COST_PER_KG,
            "lokasi": self._market_location(text, analysis),
        }

    def _seasonal_forecast(self, text: str, analysis: ContextAnalysis) -> Dict[str, Any]:
        today = self._clock()
        return {
            "produk": self._product(text, analysis),
            "bulan": self._extractor.month(text, today) or today.month,
        }

    def _top_products(self, text: str, analysis: ContextAnalysis) -> Dict[str, Any]:
        return {
            "lokasi": self._market_location(text, analysis),
            "limit": self._extractor.limit(text) or DEFAULT_TOP_LIMIT,
        }
