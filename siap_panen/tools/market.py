"""Market price tools.

Price lookups try the configured external sources in order and fall back to a
static estimate so the assistant always has a number to reason about. All
randomness goes through the injected ``random.Random``.
"""

from __future__ import annotations

import random
from datetime import date
from threading import Lock
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..observability.logging_utils import log_event
from ..schemas import (
    CityPrice,
    MarketPrice,
    PriceComparison,
    ProfitEstimate,
    RankedProduct,
    SeasonalForecast,
    TopProducts,
)
from .errors import ToolUserError
from .price_sources import PriceSource, PriceSourceError


# Reference prices in Rp/kg at producer level.
BASE_PRICES: Dict[str, int] = {
    "padi": 6500,
    "beras": 13500,
    "jagung": 5600,
    "kedelai": 11500,
    "cabai rawit": 52000,
    "cabai": 42000,
    "bawang merah": 34000,
    "bawang putih": 37000,
    "tomat": 11000,
    "kentang": 15000,
    "wortel": 11500,
    "kubis": 8000,
    "bayam": 12000,
    "kangkung": 9500,
    "sawi": 10000,
    "singkong": 3500,
    "kopi": 65000,
}
PRODUCT_ALIASES = {
    "gabah": "padi",
    "cabe": "cabai",
    "cabai merah": "cabai",
    "cabe rawit": "cabai rawit",
    "kol": "kubis",
    "ketela": "singkong",
}
CITY_PRICE_FACTORS: Dict[str, float] = {
    "jakarta": 1.10,
    "surabaya": 1.05,
    "bandung": 1.00,
    "medan": 0.97,
    "makassar": 1.03,
    "semarang": 1.01,
    "yogyakarta": 0.98,
    "denpasar": 1.08,
    "palembang": 0.99,
    "bogor": 1.04,
    "depok": 1.06,
    "tangerang": 1.07,
    "bekasi": 1.06,
    "malang": 0.96,
}
DAILY_VARIATION = 0.05
TRENDS = ("naik", "turun", "stabil")
PRICE_SPREAD_THRESHOLD = 5000
THIN_MARGIN_PERCENT = 15.0

# product -> (volatility, ROI note)
PRODUCT_PROFILES: Dict[str, Tuple[str, str]] = {
    "kopi": ("sedang", "Tanaman tahunan, modal awal besar tetapi nilai jual tinggi."),
    "cabai rawit": ("tinggi", "Potensi untung besar, risiko gagal panen saat musim hujan."),
    "cabai": ("tinggi", "Harga sangat fluktuatif, cocok untuk petani yang siap ambil risiko."),
    "bawang putih": ("sedang", "Sebagian besar pasokan impor, harga lokal relatif stabil."),
    "bawang merah": ("tinggi", "Untung besar saat harga naik, biaya benih cukup tinggi."),
    "kentang": ("sedang", "Butuh dataran tinggi, permintaan industri stabil."),
    "beras": ("rendah", "Harga dijaga pemerintah, margin kecil tetapi pasti."),
    "bayam": ("sedang", "Panen cepat (25-30 hari), perputaran modal cepat."),
    "kedelai": ("rendah", "Bersaing dengan kedelai impor, margin tipis."),
    "wortel": ("sedang", "Permintaan stabil dari pasar induk dan restoran."),
    "tomat": ("tinggi", "Mudah rusak, harga turun tajam saat panen raya."),
    "sawi": ("sedang", "Panen cepat, cocok untuk lahan sempit."),
    "kangkung": ("rendah", "Modal kecil, panen berulang, harga per kg rendah."),
    "kubis": ("sedang", "Produktivitas tinggi per hektar, harga per kg rendah."),
    "padi": ("rendah", "Harga gabah dilindungi HPP, risiko pasar rendah."),
    "jagung": ("rendah", "Permintaan pakan ternak stabil sepanjang tahun."),
    "singkong": ("rendah", "Tahan kering, modal kecil, nilai jual rendah."),
}
DEFAULT_PROFILE = ("sedang", "Data ROI belum tersedia untuk produk ini.")

# month -> Indonesian season bucket
SEASONS: Dict[int, str] = {
    11: "hujan",
    12: "hujan",
    1: "hujan",
    2: "hujan",
    3: "hujan",
    4: "pancaroba",
    5: "kemarau",
    6: "kemarau",
    7: "kemarau",
    8: "kemarau",
    9: "kemarau",
    10: "pancaroba",
}

# product -> season -> (pattern, direction, delta range in percent)
SeasonPattern = Tuple[str, str, Tuple[float, float]]
SEASONAL_PATTERNS: Dict[str, Dict[str, SeasonPattern]] = {
    "cabai": {
        "hujan": ("Curah hujan tinggi memicu penyakit dan gagal panen, pasokan turun.", "naik", (10.0, 35.0)),
        "kemarau": ("Panen di sentra produksi, pasokan melimpah.", "turun", (-20.0, -5.0)),
        "pancaroba": ("Cuaca tidak menentu, harga mudah berubah.", "fluktuatif", (-5.0, 15.0)),
    },
    "cabai rawit": {
        "hujan": ("Serangan antraknosa meningkat, pasokan rawit berkurang.", "naik", (15.0, 40.0)),
        "kemarau": ("Produksi normal, harga cenderung melandai.", "turun", (-20.0, -5.0)),
        "pancaroba": ("Peralihan musim, harga mudah berubah.", "fluktuatif", (-5.0, 20.0)),
    },
    "bawang merah": {
        "hujan": ("Umbi mudah busuk saat hujan, pasokan berkurang.", "naik", (10.0, 30.0)),
        "kemarau": ("Musim panen bawang di Brebes dan Nganjuk.", "turun", (-15.0, -5.0)),
        "pancaroba": ("Pasokan tidak merata antar sentra.", "fluktuatif", (-5.0, 10.0)),
    },
    "padi": {
        "hujan": ("Masa paceklik menjelang panen raya, stok gabah menipis.", "naik", (3.0, 10.0)),
        "kemarau": ("Panen gadu, pasokan gabah sedang.", "stabil", (-3.0, 3.0)),
        "pancaroba": ("Panen raya, pasokan gabah melimpah.", "turun", (-10.0, -3.0)),
    },
    "jagung": {
        "hujan": ("Musim tanam utama, pasokan cukup.", "stabil", (-3.0, 5.0)),
        "kemarau": ("Luas tanam berkurang, permintaan pakan tetap.", "naik", (3.0, 12.0)),
        "pancaroba": ("Panen musim hujan masuk pasar.", "turun", (-8.0, 0.0)),
    },
    "tomat": {
        "hujan": ("Buah mudah pecah dan busuk, pasokan berkurang.", "naik", (5.0, 25.0)),
        "kemarau": ("Produksi tinggi di dataran tinggi.", "turun", (-15.0, 0.0)),
        "pancaroba": ("Harga mengikuti cuaca harian.", "fluktuatif", (-5.0, 10.0)),
    },
}
DEFAULT_SEASONAL_PATTERNS: Dict[str, SeasonPattern] = {
    "hujan": ("Hujan mengganggu panen dan distribusi hortikultura.", "naik", (0.0, 10.0)),
    "kemarau": ("Pasokan relatif stabil.", "stabil", (-5.0, 5.0)),
    "pancaroba": ("Peralihan musim, harga fluktuatif.", "fluktuatif", (-5.0, 8.0)),
}


def normalize_product(produk: str) -> str:
    name = " ".join((produk or "").strip().lower().replace("_", " ").split())
    return PRODUCT_ALIASES.get(name, name)


def format_rupiah(value: float) -> str:
    return "Rp " + f"{int(round(value)):,}".replace(",", ".")


def season_for_month(month: int) -> str:
    return SEASONS[month]


class MarketTools:
    def __init__(
        self,
        sources: Sequence[PriceSource],
        *,
        rng: Optional[random.Random] = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._sources = list(sources)
        self._rng = rng or random.Random()
        self._rng_lock = Lock()
        self._clock = clock

    def spawn_rng(self) -> random.Random:
        """Child generator seeded from the shared one, for a single tool call."""
        with self._rng_lock:
            return random.Random(self._rng.getrandbits(64))

    def current_month(self) -> int:
        return self._clock().month

    def cek_harga_pasar(
        self, produk: str, lokasi: str, *, rng: Optional[random.Random] = None
    ) -> MarketPrice:
        product = normalize_product(produk)
        for source in self._sources:
            try:
                quote = source.fetch(product, lokasi)
            except PriceSourceError as exc:
                log_event("price_source_error", source=source.name, error=str(exc))
                continue
            return MarketPrice(
                produk=product,
                lokasi=lokasi,
                harga_per_kg=quote.harga_per_kg,
                trend=quote.trend or "stabil",
                sumber=quote.sumber,
                tanggal=self._clock(),
            )
        return self._estimate_price(product, lokasi, rng or self._rng)

    def _estimate_price(
        self, product: str, lokasi: str, rng: random.Random
    ) -> MarketPrice:
        base = BASE_PRICES.get(product)
        if base is None:
            raise ToolUserError(f"Harga untuk produk '{product}' belum tersedia.")
        factor = CITY_PRICE_FACTORS.get(lokasi.strip().lower(), 1.0)
        variation = rng.uniform(-DAILY_VARIATION, DAILY_VARIATION)
        log_event("price_estimate_used", produk=product, lokasi=lokasi)
        return MarketPrice(
            produk=product,
            lokasi=lokasi,
            harga_per_kg=int(round(base * factor * (1 + variation))),
            trend=rng.choice(TRENDS),
            sumber="estimasi",
            tanggal=self._clock(),
            estimasi=True,
        )

    def banding_harga_kota(
        self,
        produk: str,
        kota: Sequence[str],
        *,
        rng: Optional[random.Random] = None,
    ) -> PriceComparison:
        cities = list(dict.fromkeys(city.strip() for city in kota if city.strip()))
        if not cities:
            raise ToolUserError("Daftar kota untuk perbandingan kosong.")
        prices: List[CityPrice] = []
        for city in cities:
            quote = self.cek_harga_pasar(produk, city, rng=rng)
            prices.append(
                CityPrice(kota=city, harga_per_kg=quote.harga_per_kg, trend=quote.trend)
            )
        prices.sort(key=lambda item: item.harga_per_kg, reverse=True)
        highest, lowest = prices[0], prices[-1]
        spread = highest.harga_per_kg - lowest.harga_per_kg
        product = normalize_product(produk)
        if spread > PRICE_SPREAD_THRESHOLD:
            advice = (
                f"Selisih harga {product} antar kota cukup besar ({format_rupiah(spread)}/kg). "
                f"Pertimbangkan menjual ke {highest.kota} jika ongkos kirim di bawah selisih tersebut."
            )
        else:
            advice = (
                f"Harga {product} relatif merata antar kota (selisih {format_rupiah(spread)}/kg). "
                "Jual di pasar terdekat untuk menghemat ongkos kirim."
            )
        return PriceComparison(
            produk=product,
            harga_per_kota=prices,
            tertinggi=highest,
            terendah=lowest,
            selisih=spread,
            rekomendasi=advice,
        )

    def hitung_keuntungan(
        self,
        produk: str,
        jumlah_kg: float,
        biaya_produksi_per_kg: float,
        lokasi: str,
        *,
        rng: Optional[random.Random] = None,
    ) -> ProfitEstimate:
        quote = self.cek_harga_pasar(produk, lokasi, rng=rng)
        revenue = quote.harga_per_kg * jumlah_kg
        cost = biaya_produksi_per_kg * jumlah_kg
        profit = revenue - cost
        margin = round(profit / revenue * 100, 2) if revenue else 0.0
        return ProfitEstimate(
            produk=quote.produk,
            lokasi=lokasi,
            jumlah_kg=jumlah_kg,
            harga_per_kg=quote.harga_per_kg,
            pendapatan=round(revenue, 2),
            biaya_produksi=round(cost, 2),
            keuntungan=round(profit, 2),
            margin_persen=margin,
            trend=quote.trend,
            rekomendasi=self._profit_advice(profit, margin, quote.trend),
        )

    @staticmethod
    def _profit_advice(profit: float, margin: float, trend: str) -> str:
        if profit <= 0:
            return (
                "Harga pasar saat ini di bawah biaya produksi. Tunda penjualan jika hasil "
                "panen bisa disimpan, atau cari pasar dengan harga lebih baik."
            )
        if trend == "naik":
            advice = "Harga sedang naik. Pertimbangkan menahan sebagian hasil panen beberapa hari."
        elif trend == "turun":
            advice = "Harga cenderung turun. Sebaiknya jual segera untuk mengamankan keuntungan."
        else:
            advice = "Harga stabil. Jual sesuai kebutuhan arus kas."
        if margin < THIN_MARGIN_PERCENT:
            advice += " Margin tipis, cari cara menekan biaya produksi musim depan."
        return advice

    def prediksi_harga_musim(
        self, produk: str, bulan: int, *, rng: Optional[random.Random] = None
    ) -> SeasonalForecast:
        product = normalize_product(produk)
        season = season_for_month(bulan)
        patterns = SEASONAL_PATTERNS.get(product, DEFAULT_SEASONAL_PATTERNS)
        pattern, direction, (low, high) = patterns[season]
        delta = round((rng or self._rng).uniform(low, high), 1)
        reference = BASE_PRICES.get(product)
        projected = int(round(reference * (1 + delta / 100))) if reference else None
        return SeasonalForecast(
            produk=product,
            bulan=bulan,
            musim=season,
            pola=pattern,
            arah=direction,
            perkiraan_perubahan_persen=delta,
            harga_acuan_per_kg=reference,
            harga_perkiraan_per_kg=projected,
        )

    def produk_harga_tertinggi(
        self, lokasi: str, limit: int, *, rng: Optional[random.Random] = None
    ) -> TopProducts:
        quotes = [self.cek_harga_pasar(product, lokasi, rng=rng) for product in BASE_PRICES]
        quotes.sort(key=lambda item: item.harga_per_kg, reverse=True)
        size = max(1, min(int(limit), len(quotes)))
        ranked = []
        for index, quote in enumerate(quotes[:size], start=1):
            volatility, roi_note = PRODUCT_PROFILES.get(quote.produk, DEFAULT_PROFILE)
            ranked.append(
                RankedProduct(
                    peringkat=index,
                    produk=quote.produk,
                    harga_per_kg=quote.harga_per_kg,
                    trend=quote.trend,
                    volatilitas=volatility,
                    catatan_roi=roi_note,
                )
            )
        return TopProducts(lokasi=lokasi, produk=ranked)
