from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


Urgency = Literal["low", "medium", "high"]
TechnicalLevel = Literal["basic", "intermediate", "advanced"]
SeasonalContext = Literal[
    "dry_season", "early_wet_season", "wet_season", "late_wet_season"
]
QueryType = Literal[
    "how_to",
    "timing",
    "calculation",
    "data_request",
    "information",
    "recommendation",
    "comparison",
    "prediction",
    "price_inquiry",
    "market_analysis",
    "profit_analysis",
    "general",
]
TaskAction = Literal["tool_call", "knowledge_retrieval", "direct_response"]
ResponseStrategy = Literal["comprehensive", "concise", "step_by_step"]
ToolCategory = Literal["agriculture", "market"]


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------- analysis


class ContextAnalysis(CamelModel):
    """Structured interpretation of a single user query."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    agricultural_domain: List[str] = Field(default_factory=lambda: ["general"])
    query_type: QueryType = "general"
    urgency: Urgency = "low"
    confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    user_location: Optional[str] = None
    detected_products: List[str] = Field(default_factory=list)
    detected_cities: List[str] = Field(default_factory=list)
    intent: str = "general_inquiry"
    seasonal_context: SeasonalContext = "dry_season"
    technical_level: TechnicalLevel = "basic"
    required_tools: List[str] = Field(default_factory=list)

    @property
    def primary_domain(self) -> str:
        return self.agricultural_domain[0] if self.agricultural_domain else "general"


# ---------------------------------------------------------------- tools


class ParameterSpec(BaseModel):
    type: str
    description: str = ""
    required: bool = False


class ToolDescriptor(CamelModel):
    name: str
    description: str
    parameter_schema: Dict[str, ParameterSpec] = Field(default_factory=dict)
    category: ToolCategory
    expected_latency: Optional[str] = None
    reliability: float = Field(default=1.0, ge=0.0, le=1.0)


def _is_blank(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return value is None
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return not value
    return False


class ToolInput(CamelModel):
    """Base for tool parameters: missing, null, zero or blank values take the default."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_blank(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {key: value for key, value in data.items() if not _is_blank(value)}


class CekCuacaInput(ToolInput):
    lokasi: str = Field(default="Jakarta", description="Nama lokasi/desa")


class BuatJadwalTanamInput(ToolInput):
    tanaman: str = Field(default="padi", description="Jenis tanaman")
    tanggal: Optional[date] = Field(
        default=None, description="Tanggal mulai tanam (YYYY-MM-DD), default hari ini"
    )


class HitungKebutuhanInput(ToolInput):
    luas_ha: float = Field(default=1.0, gt=0, description="Luas lahan dalam hektar")
    dosis_kg_per_ha: float = Field(
        default=300.0, ge=0, description="Dosis pupuk per hektar (kg)"
    )
    air_liter_per_ha: float = Field(
        default=1000.0, ge=0, description="Kebutuhan air per hektar (liter)"
    )


class CekHargaPasarInput(ToolInput):
    produk: str = Field(default="padi", description="Nama produk pertanian")
    lokasi: str = Field(default="Jakarta", description="Kota/pasar acuan")


class BandingHargaKotaInput(ToolInput):
    produk: str = Field(default="padi", description="Nama produk pertanian")
    kota: List[str] = Field(
        default_factory=lambda: ["Jakarta", "Bandung", "Surabaya", "Medan"],
        description="Daftar kota yang dibandingkan",
    )


class HitungKeuntunganInput(ToolInput):
    produk: str = Field(default="padi", description="Nama produk pertanian")
    jumlah_kg: float = Field(default=100.0, gt=0, description="Jumlah panen (kg)")
    biaya_produksi_per_kg: float = Field(
        default=2000.0, ge=0, description="Biaya produksi per kg (Rp)"
    )
    lokasi: str = Field(default="Jakarta", description="Kota/pasar tujuan jual")


class PrediksiHargaMusimInput(ToolInput):
    produk: str = Field(default="padi", description="Nama produk pertanian")
    bulan: Optional[int] = Field(
        default=None, ge=1, le=12, description="Bulan (1-12), default bulan ini"
    )


class ProdukHargaTertinggiInput(ToolInput):
    lokasi: str = Field(default="Jakarta", description="Kota/pasar acuan")
    limit: int = Field(default=5, ge=1, description="Jumlah produk yang ditampilkan")


class MarketPrice(BaseModel):
    produk: str
    lokasi: str
    harga_per_kg: int
    satuan: str = "Rp/kg"
    trend: Literal["naik", "turun", "stabil"]
    sumber: str
    tanggal: date
    estimasi: bool = False


class CityPrice(BaseModel):
    kota: str
    harga_per_kg: int
    trend: str


class PriceComparison(BaseModel):
    produk: str
    harga_per_kota: List[CityPrice]
    tertinggi: CityPrice
    terendah: CityPrice
    selisih: int
    rekomendasi: str


class ProfitEstimate(BaseModel):
    produk: str
    lokasi: str
    jumlah_kg: float
    harga_per_kg: int
    pendapatan: float
    biaya_produksi: float
    keuntungan: float
    margin_persen: float
    trend: str
    rekomendasi: str


class SeasonalForecast(BaseModel):
    produk: str
    bulan: int
    musim: Literal["hujan", "kemarau", "pancaroba"]
    pola: str
    arah: str
    perkiraan_perubahan_persen: float
    harga_acuan_per_kg: Optional[int] = None
    harga_perkiraan_per_kg: Optional[int] = None


class RankedProduct(BaseModel):
    peringkat: int
    produk: str
    harga_per_kg: int
    trend: str
    volatilitas: str
    catatan_roi: str


class TopProducts(BaseModel):
    lokasi: str
    produk: List[RankedProduct]


# ---------------------------------------------------------------- planning


class Task(CamelModel):
    id: str
    action: TaskAction
    tool_name: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 1
    dependencies: List[str] = Field(default_factory=list)


class ExecutionPlan(CamelModel):
    reasoning: str
    tasks: List[Task]
    response_strategy: ResponseStrategy = "concise"

    def tool_tasks(self) -> List[Task]:
        return [task for task in self.tasks if task.action == "tool_call"]

    def response_task(self) -> Task:
        return next(task for task in self.tasks if task.action == "direct_response")

    def execution_order(self) -> List[Task]:
        """Tasks ordered so every task comes after its dependencies."""
        done: set[str] = set()
        ordered: List[Task] = []
        pending = list(self.tasks)
        while pending:
            ready = [task for task in pending if set(task.dependencies) <= done]
            if not ready:
                raise ValueError("execution plan has a dependency cycle")
            for task in ready:
                ordered.append(task)
                done.add(task.id)
                pending.remove(task)
        return ordered


# ---------------------------------------------------------------- memory


class ToolCall(CamelModel):
    tool_name: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    timestamp: datetime = Field(default_factory=datetime.now)
    success: bool = True


class UserPreferences(CamelModel):
    location: Optional[str] = None
    farm_type: Optional[str] = None
    experience_level: Optional[Literal["beginner", "intermediate", "expert"]] = None
    response_style: Literal["detailed", "concise"] = "detailed"


class ConversationState(CamelModel):
    conversation_id: str
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
    tool_history: List[ToolCall] = Field(default_factory=list)
    user_preferences: UserPreferences = Field(default_factory=UserPreferences)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


# ---------------------------------------------------------------- wire


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(CamelModel):
    """Incoming chat payload; the client resends the full history every turn."""

    messages: List[ChatMessage]
    conversation_id: Optional[str] = None

    def last_user_message(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""


class ResponseMetadata(CamelModel):
    conversation_id: str
    tools_used: List[str] = Field(default_factory=list)
    context_domains: List[str] = Field(default_factory=list)
    query_type: str = "general"
    suggested_follow_ups: List[str] = Field(default_factory=list, max_length=3)
    has_tool_data: bool = False


class FallbackMetadata(CamelModel):
    error: bool = True
    fallback: bool = True


class ChatResponse(CamelModel):
    response: str
    metadata: Union[ResponseMetadata, FallbackMetadata]

    @property
    def is_fallback(self) -> bool:
        return isinstance(self.metadata, FallbackMetadata)
