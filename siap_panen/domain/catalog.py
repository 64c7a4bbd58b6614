"""Closed vocabularies shared by the analyzer, the extractors and the tools."""

from __future__ import annotations

from typing import Dict, List


# Order matters: longer names first so "cabai rawit" wins over "cabai".
PRODUCTS: List[str] = [
    "padi",
    "beras",
    "jagung",
    "kedelai",
    "cabai rawit",
    "cabai",
    "bawang merah",
    "bawang putih",
    "tomat",
    "kentang",
    "wortel",
    "kubis",
    "bayam",
    "kangkung",
    "sawi",
    "singkong",
    "kopi",
]

CROPS: List[str] = [
    "padi",
    "jagung",
    "kedelai",
    "cabai",
    "tomat",
    "bayam",
    "kangkung",
    "sawi",
    "kentang",
    "bawang merah",
    "singkong",
]

# lower-case alias -> display name
CITY_ALIASES: Dict[str, str] = {
    "jakarta": "Jakarta",
    "bandung": "Bandung",
    "surabaya": "Surabaya",
    "medan": "Medan",
    "makassar": "Makassar",
    "semarang": "Semarang",
    "yogyakarta": "Yogyakarta",
    "jogja": "Yogyakarta",
    "malang": "Malang",
    "bogor": "Bogor",
    "depok": "Depok",
    "tangerang": "Tangerang",
    "bekasi": "Bekasi",
    "palembang": "Palembang",
    "denpasar": "Denpasar",
    "padang": "Padang",
    "pekanbaru": "Pekanbaru",
    "banjarmasin": "Banjarmasin",
    "pontianak": "Pontianak",
    "manado": "Manado",
}

DEFAULT_COMPARISON_CITIES: List[str] = ["Jakarta", "Bandung", "Surabaya", "Medan"]

MONTHS: Dict[str, int] = {
    "januari": 1,
    "februari": 2,
    "maret": 3,
    "april": 4,
    "mei": 5,
    "juni": 6,
    "juli": 7,
    "agustus": 8,
    "september": 9,
    "oktober": 10,
    "november": 11,
    "desember": 12,
}


def _variants(name: str) -> List[str]:
    variants = [name]
    if " " in name:
        variants.append(name.replace(" ", "_"))
    return variants


def find_products(text: str) -> List[str]:
    """Products mentioned in lower-cased text, in catalog order, without overlaps."""
    found: List[str] = []
    for product in PRODUCTS:
        if any(product in item for item in found):
            continue
        if any(variant in text for variant in _variants(product)):
            found.append(product)
    return found


def find_cities(text: str) -> List[str]:
    found: List[str] = []
    for alias, display in CITY_ALIASES.items():
        if display in found:
            continue
        if alias in text:
            found.append(display)
    return found
