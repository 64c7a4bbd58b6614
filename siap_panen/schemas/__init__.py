from .models import (
    BandingHargaKotaInput,
    BuatJadwalTanamInput,
    CekCuacaInput,
    CekHargaPasarInput,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    CityPrice,
    ContextAnalysis,
    ConversationState,
    ExecutionPlan,
    FallbackMetadata,
    HitungKebutuhanInput,
    HitungKeuntunganInput,
    MarketPrice,
    ParameterSpec,
    PrediksiHargaMusimInput,
    PriceComparison,
    ProdukHargaTertinggiInput,
    ProfitEstimate,
    RankedProduct,
    ResponseMetadata,
    SeasonalForecast,
    Task,
    ToolCall,
    ToolDescriptor,
    ToolInput,
    TopProducts,
    UserPreferences,
)

__all__ = [
    "BandingHargaKotaInput",
    "BuatJadwalTanamInput",
    "CekCuacaInput",
    "CekHargaPasarInput",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "CityPrice",
    "ContextAnalysis",
    "ConversationState",
    "ExecutionPlan",
    "FallbackMetadata",
    "HitungKebutuhanInput",
    "HitungKeuntunganInput",
    "MarketPrice",
    "ParameterSpec",
    "PrediksiHargaMusimInput",
    "PriceComparison",
    "ProdukHargaTertinggiInput",
    "ProfitEstimate",
    "RankedProduct",
    "ResponseMetadata",
    "SeasonalForecast",
    "Task",
    "ToolCall",
    "ToolDescriptor",
    "ToolInput",
    "TopProducts",
    "UserPreferences",
]
