from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from ..agent.intent_rules import recommend_tool_names
from ..infra.config import AppConfig, get_config
from ..observability.logging_utils import log_error, log_event, summarize_text
from ..observability.otel import record_exception, start_span
from ..schemas import (
    BandingHargaKotaInput,
    BuatJadwalTanamInput,
    CekCuacaInput,
    CekHargaPasarInput,
    HitungKebutuhanInput,
    HitungKeuntunganInput,
    ParameterSpec,
    PrediksiHargaMusimInput,
    ProdukHargaTertinggiInput,
    ToolDescriptor,
    ToolInput,
)
from .errors import ToolUserError, tool_error
from .farming import FarmingTools
from .market import MarketTools
from .price_sources import build_price_sources


class ToolName(str, Enum):
    CEK_CUACA = "cekCuaca"
    BUAT_JADWAL_TANAM = "buatJadwalTanam"
    HITUNG_KEBUTUHAN = "hitungKebutuhan"
    CEK_HARGA_PASAR = "cekHargaPasar"
    BANDING_HARGA_KOTA = "bandingHargaKota"
    HITUNG_KEUNTUNGAN = "hitungKeuntungan"
    PREDIKSI_HARGA_MUSIM = "prediksiHargaMusim"
    PRODUK_HARGA_TERTINGGI = "produkHargaTertinggi"

    @classmethod
    def parse(cls, value: str) -> Optional["ToolName"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    category: str
    input_model: Type[ToolInput]
    required: Tuple[str, ...] = ()
    expected_latency: Optional[str] = None
    reliability: float = 1.0


TOOL_SPECS: Tuple[ToolSpec, ...] = (
    ToolSpec(
        ToolName.CEK_CUACA,
        "Cek kondisi cuaca untuk perencanaan pertanian",
        "agriculture",
        CekCuacaInput,
        required=("lokasi",),
        expected_latency="fast",
        reliability=0.95,
    ),
    ToolSpec(
        ToolName.BUAT_JADWAL_TANAM,
        "Buat jadwal tanam untuk tanaman tertentu",
        "agriculture",
        BuatJadwalTanamInput,
        required=("tanaman", "tanggal"),
        expected_latency="fast",
    ),
    ToolSpec(
        ToolName.HITUNG_KEBUTUHAN,
        "Hitung kebutuhan pupuk dan air untuk lahan",
        "agriculture",
        HitungKebutuhanInput,
        required=("luasHa", "dosisKgPerHa", "airLiterPerHa"),
        expected_latency="fast",
    ),
    ToolSpec(
        ToolName.CEK_HARGA_PASAR,
        "Cek harga pasar terkini untuk produk pertanian",
        "market",
        CekHargaPasarInput,
        required=("produk",),
        expected_latency="medium",
        reliability=0.9,
    ),
    ToolSpec(
        ToolName.BANDING_HARGA_KOTA,
        "Bandingkan harga produk di berbagai kota",
        "market",
        BandingHargaKotaInput,
        required=("produk",),
        expected_latency="slow",
        reliability=0.85,
    ),
    ToolSpec(
        ToolName.HITUNG_KEUNTUNGAN,
        "Hitung estimasi keuntungan penjualan hasil panen",
        "market",
        HitungKeuntunganInput,
        required=("produk", "jumlahKg"),
        expected_latency="medium",
        reliability=0.9,
    ),
    ToolSpec(
        ToolName.PREDIKSI_HARGA_MUSIM,
        "Prediksi harga berdasarkan pola musiman",
        "market",
        PrediksiHargaMusimInput,
        required=("produk",),
        expected_latency="fast",
        reliability=0.7,
    ),
    ToolSpec(
        ToolName.PRODUK_HARGA_TERTINGGI,
        "Lihat produk dengan harga tertinggi di suatu lokasi",
        "market",
        ProdukHargaTertinggiInput,
        required=("lokasi",),
        expected_latency="slow",
        reliability=0.85,
    ),
)
SPEC_INDEX: Dict[ToolName, ToolSpec] = {spec.name: spec for spec in TOOL_SPECS}
UNKNOWN_DESCRIPTION = "Deskripsi tidak tersedia"

_JSON_TYPES = {
    "string": "string",
    "number": "number",
    "integer": "number",
    "array": "array",
    "boolean": "boolean",
}


def parameter_schema(spec: ToolSpec) -> Dict[str, ParameterSpec]:
    """Wire-named parameter schema derived from the tool's input model."""
    schema = spec.input_model.model_json_schema(by_alias=True)
    params: Dict[str, ParameterSpec] = {}
    for name, prop in schema.get("properties", {}).items():
        raw_type = prop.get("type")
        if raw_type is None:
            # Optional[...] fields render as anyOf with a null branch.
            raw_type = next(
                (item.get("type") for item in prop.get("anyOf", []) if item.get("type") != "null"),
                "string",
            )
        params[name] = ParameterSpec(
            type=_JSON_TYPES.get(raw_type, "string"),
            description=prop.get("description", ""),
            required=name in spec.required,
        )
    return params


def _to_payload(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result


class ToolRegistry:
    """Catalog and dispatcher for the assistant's tools.

    ``execute_tool`` never raises: unknown names, invalid parameters and tool
    failures all come back as ``{"error": True, "message": ...}``.
    """

    def __init__(
        self,
        market: MarketTools,
        farming: FarmingTools,
        *,
        recommender: Callable[[str], List[str]] = recommend_tool_names,
    ) -> None:
        self._recommender = recommender
        self._market = market
        self._handlers: Dict[ToolName, Callable[[Any, Optional[random.Random]], Any]] = {
            ToolName.CEK_CUACA: lambda p, rng: farming.cek_cuaca(p.lokasi),
            ToolName.BUAT_JADWAL_TANAM: lambda p, rng: farming.buat_jadwal_tanam(
                p.tanaman, p.tanggal
            ),
            ToolName.HITUNG_KEBUTUHAN: lambda p, rng: farming.hitung_kebutuhan(
                p.luas_ha, p.dosis_kg_per_ha, p.air_liter_per_ha
            ),
            ToolName.CEK_HARGA_PASAR: lambda p, rng: market.cek_harga_pasar(
                p.produk, p.lokasi, rng=rng
            ),
            ToolName.BANDING_HARGA_KOTA: lambda p, rng: market.banding_harga_kota(
                p.produk, p.kota, rng=rng
            ),
            ToolName.HITUNG_KEUNTUNGAN: lambda p, rng: market.hitung_keuntungan(
                p.produk, p.jumlah_kg, p.biaya_produksi_per_kg, p.lokasi, rng=rng
            ),
            ToolName.PREDIKSI_HARGA_MUSIM: lambda p, rng: market.prediksi_harga_musim(
                p.produk, p.bulan or market.current_month(), rng=rng
            ),
            ToolName.PRODUK_HARGA_TERTINGGI: lambda p, rng: market.produk_harga_tertinggi(
                p.lokasi, p.limit, rng=rng
            ),
        }

    @classmethod
    def from_config(
        cls,
        cfg: Optional[AppConfig] = None,
        *,
        rng: Optional[random.Random] = None,
        clock: Callable[[], date] = date.today,
    ) -> "ToolRegistry":
        cfg = cfg or get_config()
        rng = rng or random.Random(cfg.price_random_seed)
        market = MarketTools(build_price_sources(cfg), rng=rng, clock=clock)
        farming = FarmingTools(
            weather_provider=cfg.weather_provider,
            weather_api_url=cfg.weather_api_url,
            weather_api_key=cfg.weather_api_key,
            clock=clock,
        )
        return cls(market, farming)

    def names(self) -> List[str]:
        return [name.value for name in self._handlers]

    def has_tool(self, name: str) -> bool:
        return ToolName.parse(name) in self._handlers

    def list_tools(self) -> List[ToolDescriptor]:
        return [
            ToolDescriptor(
                name=spec.name.value,
                description=spec.description,
                parameter_schema=parameter_schema(spec),
                category=spec.category,
                expected_latency=spec.expected_latency,
                reliability=spec.reliability,
            )
            for spec in TOOL_SPECS
            if spec.name in self._handlers
        ]

    def describe(self, name: str) -> str:
        tool = ToolName.parse(name)
        if tool is None or tool not in SPEC_INDEX:
            return UNKNOWN_DESCRIPTION
        return SPEC_INDEX[tool].description

    def usage_stats(self) -> Dict[str, int]:
        stats = {"total_tools": len(self._handlers)}
        for spec in TOOL_SPECS:
            if spec.name in self._handlers:
                key = f"{spec.category}_tools"
                stats[key] = stats.get(key, 0) + 1
        return stats

    def recommend_tools(self, query: str) -> List[str]:
        return [name for name in self._recommender(query) if self.has_tool(name)]

    def spawn_rng(self) -> random.Random:
        return self._market.spawn_rng()

    def execute_tool(
        self,
        name: str,
        parameters: Optional[Dict[str, Any]] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> Any:
        tool = ToolName.parse(name)
        if tool is None or tool not in self._handlers:
            log_event("tool_error", tool=name, error="unknown tool")
            return tool_error(f"Tool {name} tidak ditemukan")
        spec = SPEC_INDEX[tool]
        with start_span(
            "tool.execute", {"tool.name": tool.value, "tool.parameters": parameters}
        ) as span:
            try:
                params = spec.input_model.model_validate(parameters or {})
                result = self._handlers[tool](params, rng)
            except ToolUserError as exc:
                record_exception(span, exc)
                log_event("tool_error", tool=tool.value, error=str(exc))
                return tool_error(f"Gagal menjalankan {tool.value}: {exc}")
            except ValidationError as exc:
                record_exception(span, exc)
                log_event("tool_error", tool=tool.value, error=str(exc))
                return tool_error(f"Gagal menjalankan {tool.value}: parameter tidak valid")
            except Exception as exc:
                record_exception(span, exc)
                log_error("tool_error", tool=tool.value, error=str(exc))
                return tool_error(f"Gagal menjalankan {tool.value}")
            payload = _to_payload(result)
            log_event(
                "tool_execute",
                tool=tool.value,
                parameters=params.model_dump(mode="json", by_alias=True),
                result_summary=summarize_text(str(payload), 200),
            )
            return payload
