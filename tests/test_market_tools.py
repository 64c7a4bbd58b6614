import random
import sys
import unittest
from datetime import date
from pathlib import Path

import httpx

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from siap_panen.tools.errors import ToolUserError
from siap_panen.tools.market import (
    BASE_PRICES,
    MarketTools,
    format_rupiah,
    season_for_month,
)
from siap_panen.tools.price_sources import (
    HttpPriceSource,
    PriceQuote,
    PriceSourceError,
    parse_quote,
)


TODAY = date(2025, 6, 1)


class _MidpointRandom:
    """Deterministic stand-in for random.Random: midpoints and a fixed trend."""

    def __init__(self, trend: str = "stabil") -> None:
        self.trend = trend

    def uniform(self, low: float, high: float) -> float:
        return (low + high) / 2

    def choice(self, seq):
        return self.trend


class _FailingSource:
    def __init__(self, name: str = "primary") -> None:
        self.name = name
        self.calls = 0

    def fetch(self, produk: str, lokasi: str) -> PriceQuote:
        self.calls += 1
        raise PriceSourceError(f"{self.name}: not configured")


class _FixedSource:
    def __init__(self, name: str, price: int, trend: str = "naik") -> None:
        self.name = name
        self.price = price
        self.trend = trend
        self.calls = []

    def fetch(self, produk: str, lokasi: str) -> PriceQuote:
        self.calls.append((produk, lokasi))
        return PriceQuote(harga_per_kg=self.price, trend=self.trend, sumber=self.name)


def _estimating_tools(trend: str = "stabil") -> MarketTools:
    return MarketTools(
        [_FailingSource("primary"), _FailingSource("secondary")],
        rng=_MidpointRandom(trend),
        clock=lambda: TODAY,
    )


class MarketPriceTests(unittest.TestCase):
    def test_primary_source_wins(self) -> None:
        primary = _FixedSource("primary", 45000)
        secondary = _FixedSource("secondary", 99999)
        tools = MarketTools([primary, secondary], rng=_MidpointRandom(), clock=lambda: TODAY)

        price = tools.cek_harga_pasar("cabai", "Jakarta")

        self.assertEqual(price.harga_per_kg, 45000)
        self.assertEqual(price.sumber, "primary")
        self.assertFalse(price.estimasi)
        self.assertEqual(secondary.calls, [])

    def test_secondary_used_when_primary_fails(self) -> None:
        primary = _FailingSource("primary")
        secondary = _FixedSource("secondary", 41000, trend="turun")
        tools = MarketTools([primary, secondary], rng=_MidpointRandom(), clock=lambda: TODAY)

        price = tools.cek_harga_pasar("cabai", "Bandung")

        self.assertEqual(primary.calls, 1)
        self.assertEqual(price.sumber, "secondary")
        self.assertEqual(price.trend, "turun")

    def test_static_estimate_when_all_sources_fail(self) -> None:
        tools = _estimating_tools(trend="naik")
        price = tools.cek_harga_pasar("Cabe", "Jakarta")

        self.assertTrue(price.estimasi)
        self.assertEqual(price.produk, "cabai")
        self.assertEqual(price.harga_per_kg, round(BASE_PRICES["cabai"] * 1.10))
        self.assertEqual(price.trend, "naik")
        self.assertEqual(price.tanggal, TODAY)

    def test_estimate_stays_within_daily_variation(self) -> None:
        tools = MarketTools(
            [_FailingSource()], rng=random.Random(7), clock=lambda: TODAY
        )
        for _ in range(20):
            price = tools.cek_harga_pasar("padi", "Bandung")
            self.assertGreaterEqual(price.harga_per_kg, round(6500 * 0.95) - 1)
            self.assertLessEqual(price.harga_per_kg, round(6500 * 1.05) + 1)
            self.assertIn(price.trend, ("naik", "turun", "stabil"))

    def test_unknown_product_raises_user_error(self) -> None:
        with self.assertRaises(ToolUserError):
            _estimating_tools().cek_harga_pasar("durian montong", "Jakarta")

    def test_child_generators_replay_for_same_seed(self) -> None:
        def _prices(seed: int):
            tools = MarketTools(
                [_FailingSource()], rng=random.Random(seed), clock=lambda: TODAY
            )
            children = [tools.spawn_rng() for _ in range(3)]
            # Consume the children out of order; each result depends only on its own child.
            return [
                tools.cek_harga_pasar("cabai", "Jakarta", rng=children[index])
                for index in (2, 0, 1)
            ]

        self.assertEqual(_prices(42), _prices(42))

    def test_call_rng_overrides_shared_generator(self) -> None:
        tools = _estimating_tools(trend="stabil")
        price = tools.cek_harga_pasar("cabai", "Jakarta", rng=_MidpointRandom("turun"))
        self.assertEqual(price.trend, "turun")


class CityComparisonTests(unittest.TestCase):
    def test_sorted_descending_with_spread(self) -> None:
        result = _estimating_tools().banding_harga_kota(
            "cabai", ["Bandung", "Medan", "Jakarta", "Surabaya"]
        )
        prices = [item.harga_per_kg for item in result.harga_per_kota]

        self.assertEqual(prices, sorted(prices, reverse=True))
        self.assertEqual(
            [item.kota for item in result.harga_per_kota],
            ["Jakarta", "Surabaya", "Bandung", "Medan"],
        )
        self.assertEqual(result.tertinggi.kota, "Jakarta")
        self.assertEqual(result.terendah.kota, "Medan")
        self.assertEqual(
            result.selisih, result.tertinggi.harga_per_kg - result.terendah.harga_per_kg
        )
        self.assertGreater(result.selisih, 5000)
        self.assertIn("Jakarta", result.rekomendasi)

    def test_small_spread_recommends_nearest_market(self) -> None:
        result = _estimating_tools().banding_harga_kota("padi", ["Bandung", "Medan"])
        self.assertLessEqual(result.selisih, 5000)
        self.assertIn("pasar terdekat", result.rekomendasi)

    def test_empty_city_list_is_rejected(self) -> None:
        with self.assertRaises(ToolUserError):
            _estimating_tools().banding_harga_kota("padi", ["  "])


class ProfitTests(unittest.TestCase):
    def test_profit_figures(self) -> None:
        result = _estimating_tools().hitung_keuntungan("padi", 100, 2000, "Bandung")

        self.assertEqual(result.harga_per_kg, 6500)
        self.assertEqual(result.pendapatan, 650000)
        self.assertEqual(result.biaya_produksi, 200000)
        self.assertEqual(result.keuntungan, 450000)
        self.assertAlmostEqual(result.margin_persen, 69.23)
        self.assertIn("stabil", result.rekomendasi)

    def test_loss_recommendation(self) -> None:
        result = _estimating_tools().hitung_keuntungan("padi", 100, 9000, "Bandung")
        self.assertLess(result.keuntungan, 0)
        self.assertIn("di bawah biaya produksi", result.rekomendasi)

    def test_thin_margin_note(self) -> None:
        result = _estimating_tools(trend="turun").hitung_keuntungan(
            "padi", 100, 6000, "Bandung"
        )
        self.assertLess(result.margin_persen, 15)
        self.assertIn("jual segera", result.rekomendasi)
        self.assertIn("Margin tipis", result.rekomendasi)


class SeasonalForecastTests(unittest.TestCase):
    def test_season_buckets(self) -> None:
        for month in (11, 12, 1, 2, 3):
            self.assertEqual(season_for_month(month), "hujan")
        for month in (5, 6, 7, 8, 9):
            self.assertEqual(season_for_month(month), "kemarau")
        for month in (4, 10):
            self.assertEqual(season_for_month(month), "pancaroba")

    def test_product_pattern(self) -> None:
        forecast = _estimating_tools().prediksi_harga_musim("cabai", 1)
        self.assertEqual(forecast.musim, "hujan")
        self.assertEqual(forecast.arah, "naik")
        self.assertAlmostEqual(forecast.perkiraan_perubahan_persen, 22.5)
        self.assertEqual(forecast.harga_acuan_per_kg, BASE_PRICES["cabai"])
        self.assertGreater(forecast.harga_perkiraan_per_kg, forecast.harga_acuan_per_kg)

    def test_default_pattern_for_unlisted_product(self) -> None:
        forecast = _estimating_tools().prediksi_harga_musim("kopi", 7)
        self.assertEqual(forecast.musim, "kemarau")
        self.assertEqual(forecast.arah, "stabil")


class TopProductsTests(unittest.TestCase):
    def test_ranked_and_limited(self) -> None:
        result = _estimating_tools().produk_harga_tertinggi("Jakarta", 3)

        self.assertEqual(
            [item.produk for item in result.produk], ["kopi", "cabai rawit", "cabai"]
        )
        self.assertEqual([item.peringkat for item in result.produk], [1, 2, 3])
        self.assertTrue(all(item.catatan_roi for item in result.produk))

    def test_limit_is_clamped(self) -> None:
        result = _estimating_tools().produk_harga_tertinggi("Jakarta", 100)
        self.assertEqual(len(result.produk), len(BASE_PRICES))


class HttpPriceSourceTests(unittest.TestCase):
    def test_parses_nested_payload(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"data": {"harga": "45000", "trend": "up"}})

        source = HttpPriceSource(
            "primary",
            "http://prices.test/api",
            api_key="secret",
            transport=httpx.MockTransport(handler),
        )
        quote = source.fetch("cabai", "Jakarta")

        self.assertEqual(quote, PriceQuote(harga_per_kg=45000, trend="naik", sumber="primary"))
        self.assertEqual(seen["params"], {"komoditas": "cabai", "lokasi": "Jakarta"})
        self.assertEqual(seen["auth"], "Bearer secret")

    def test_http_error_becomes_source_error(self) -> None:
        source = HttpPriceSource(
            "primary",
            "http://prices.test/api",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        with self.assertRaises(PriceSourceError):
            source.fetch("cabai", "Jakarta")

    def test_unconfigured_source_fails_fast(self) -> None:
        with self.assertRaises(PriceSourceError):
            HttpPriceSource("secondary", None).fetch("cabai", "Jakarta")

    def test_payload_without_price_is_rejected(self) -> None:
        with self.assertRaises(PriceSourceError):
            parse_quote("primary", [{"komoditas": "cabai"}])
        with self.assertRaises(PriceSourceError):
            parse_quote("primary", [])

    def test_fallback_after_http_failure(self) -> None:
        failing = HttpPriceSource(
            "primary",
            "http://prices.test/api",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        tools = MarketTools([failing], rng=_MidpointRandom(), clock=lambda: TODAY)
        price = tools.cek_harga_pasar("bawang merah", "Bandung")
        self.assertTrue(price.estimasi)
        self.assertEqual(price.harga_per_kg, BASE_PRICES["bawang merah"])


class FormatRupiahTests(unittest.TestCase):
    def test_thousands_separator(self) -> None:
        self.assertEqual(format_rupiah(1250000), "Rp 1.250.000")
        self.assertEqual(format_rupiah(950), "Rp 950")


if __name__ == "__main__":
    unittest.main()
