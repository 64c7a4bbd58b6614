from __future__ import annotations

from typing import Dict, Iterable, List, Tuple


DOMAIN_KEYWORDS: Dict[str, List[str]] = {
    "weather": ["cuaca", "hujan", "cerah", "iklim", "kemarau", "suhu", "banjir", "kekeringan"],
    "crops": [
        "tanam",
        "padi",
        "jagung",
        "kedelai",
        "cabai",
        "tomat",
        "bayam",
        "kangkung",
        "sawi",
        "panen",
        "bibit",
        "benih",
        "varietas",
    ],
    "soil": ["tanah", "pupuk", "nutrisi", "kompos", "unsur hara", "lahan"],
    "pests": ["hama", "penyakit", "wereng", "ulat", "jamur", "pestisida", "gulma", "tikus"],
    "irrigation": ["irigasi", "air", "siram", "pengairan", "drainase"],
    "market": ["pasar", "jual", "beli", "pembeli", "tengkulak", "distributor"],
    "pricing": ["harga", "mahal", "murah", "per kg", "rupiah"],
    "economics": ["untung", "rugi", "laba", "modal", "biaya", "margin", "profit", "pendapatan"],
    "trading": ["ekspor", "impor", "stok", "grosir", "borongan", "kontrak", "lelang"],
}

# Declaration order breaks ties between groups with the same hit count.
QUERY_TYPE_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("how_to", ["bagaimana", "cara", "langkah", "gimana", "tips"]),
    ("timing", ["kapan", "waktu", "jadwal", "musim tanam", "bulan apa"]),
    ("calculation", ["berapa", "hitung", "kebutuhan", "total", "dosis"]),
    ("data_request", ["cek", "lihat", "tampilkan", "data"]),
    ("information", ["apa itu", "jelaskan", "informasi", "mengapa", "kenapa"]),
    ("recommendation", ["sebaiknya", "rekomendasi", "saran", "terbaik", "cocok", "pilih"]),
    ("comparison", ["banding", "perbandingan", "lebih mahal", "lebih murah", "selisih", "versus"]),
    ("prediction", ["prediksi", "ramalan", "perkiraan", "bulan depan", "musim depan"]),
    ("price_inquiry", ["harga", "berapa harga", "harga pasar", "harga terkini", "per kg"]),
    ("market_analysis", ["tren", "trend", "permintaan", "pasokan", "analisis pasar"]),
    ("profit_analysis", ["untung", "rugi", "laba", "margin", "profit", "balik modal"]),
]

URGENT_KEYWORDS = ["urgent", "darurat", "segera", "cepat", "mendesak", "gawat"]
MARKET_CRASH_KEYWORDS = ["harga anjlok", "harga jatuh", "harga hancur", "turun drastis"]
NEAR_TERM_KEYWORDS = ["besok", "lusa", "minggu ini", "hari ini"]
READY_TO_SELL_KEYWORDS = ["siap jual", "mau jual", "siap panen", "ingin jual"]

SELL_KEYWORDS = ["jual", "menjual", "penjualan"]
BUY_KEYWORDS = ["beli", "membeli", "pembelian"]

ADVANCED_TERMS = ["ph", "nutrisi", "mikronutrien", "pemupukan foliar", "integrated", "terpadu"]
INTERMEDIATE_TERMS = ["pupuk", "varietas", "hama", "irigasi"]

WEATHER_TOOL_KEYWORDS = ["cuaca", "hujan", "cerah", "iklim", "musim"]
PLANTING_TOOL_KEYWORDS = ["jadwal tanam", "kapan tanam", "waktu tanam", "musim tanam"]
REQUIREMENT_TOOL_KEYWORDS = ["hitung", "butuh berapa", "kebutuhan", "pupuk", "air", "dosis", "berapa"]
PRICE_TOOL_KEYWORDS = ["harga", "pasar", "jual", "beli", "harga pasar", "harga terkini"]
COMPARE_TOOL_KEYWORDS = [
    "banding",
    "bandingkan",
    "perbandingan harga",
    "harga di",
    "lebih mahal",
    "lebih murah",
]
PROFIT_TOOL_KEYWORDS = ["keuntungan", "untung", "rugi", "laba", "margin", "profit"]
FORECAST_TOOL_KEYWORDS = ["prediksi", "ramalan", "trend", "naik", "turun", "bulan depan", "musim depan"]
TOP_PRODUCT_TOOL_KEYWORDS = ["tertinggi", "termahal", "terbaik", "paling mahal", "top", "ranking"]
SELLING_COMPOSITE_KEYWORDS = ["mau jual", "siap panen"]
CITY_CHOICE_COMPOSITE_KEYWORDS = ["pilih kota", "kemana jual"]

TOOL_KEYWORD_RULES: List[Tuple[str, List[str]]] = [
    ("cekCuaca", WEATHER_TOOL_KEYWORDS),
    ("buatJadwalTanam", PLANTING_TOOL_KEYWORDS),
    ("hitungKebutuhan", REQUIREMENT_TOOL_KEYWORDS),
    ("cekHargaPasar", PRICE_TOOL_KEYWORDS),
    ("bandingHargaKota", COMPARE_TOOL_KEYWORDS),
    ("hitungKeuntungan", PROFIT_TOOL_KEYWORDS),
    ("prediksiHargaMusim", FORECAST_TOOL_KEYWORDS),
    ("produkHargaTertinggi", TOP_PRODUCT_TOOL_KEYWORDS),
]
COMPOSITE_TOOL_RULES: List[Tuple[List[str], List[str]]] = [
    (SELLING_COMPOSITE_KEYWORDS, ["cekHargaPasar", "hitungKeuntungan"]),
    (CITY_CHOICE_COMPOSITE_KEYWORDS, ["bandingHargaKota"]),
]


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(word in text for word in keywords)


def _count_hits(text: str, keywords: Iterable[str]) -> int:
    return sum(1 for word in keywords if word in text)


def detect_domains(text: str) -> List[str]:
    domains = [name for name, words in DOMAIN_KEYWORDS.items() if _contains_any(text, words)]
    return domains or ["general"]


def classify_query_type(text: str) -> str:
    best_type, best_hits = "general", 0
    for query_type, words in QUERY_TYPE_KEYWORDS:
        hits = _count_hits(text, words)
        if hits > best_hits:
            best_type, best_hits = query_type, hits
    return best_type


def assess_urgency(text: str) -> str:
    if _contains_any(text, URGENT_KEYWORDS) or _contains_any(text, MARKET_CRASH_KEYWORDS):
        return "high"
    if _contains_any(text, NEAR_TERM_KEYWORDS) or _contains_any(text, READY_TO_SELL_KEYWORDS):
        return "medium"
    return "low"


def assess_technical_level(text: str) -> str:
    if _contains_any(text, ADVANCED_TERMS):
        return "advanced"
    if _contains_any(text, INTERMEDIATE_TERMS):
        return "intermediate"
    return "basic"


def derive_intent(text: str, domains: List[str], query_type: str) -> str:
    if "market" in domains or "pricing" in domains:
        if _contains_any(text, SELL_KEYWORDS):
            return "selling_decision"
        if _contains_any(text, BUY_KEYWORDS):
            return "buying_decision"
        return "price_check"
    if "economics" in domains:
        return "profit_analysis"
    if "crops" in domains and query_type == "recommendation":
        return "crop_planning"
    if "weather" in domains:
        return "weather_planning"
    if query_type == "calculation":
        return "resource_calculation"
    return "general_inquiry"


def recommend_tool_names(query: str) -> List[str]:
    """Tool names for a query, first match first, without duplicates."""
    text = (query or "").lower()
    tools: List[str] = []
    for tool_name, words in TOOL_KEYWORD_RULES:
        if _contains_any(text, words) and tool_name not in tools:
            tools.append(tool_name)
    for words, forced in COMPOSITE_TOOL_RULES:
        if not _contains_any(text, words):
            continue
        for tool_name in forced:
            if tool_name not in tools:
                tools.append(tool_name)
    return tools
