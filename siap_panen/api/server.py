import asyncio
import json
from contextlib import asynccontextmanager
from functools import lru_cache
from threading import Event

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..agent.orchestrator import (
    ChatOrchestrator,
    InvalidChatRequest,
    apology_response,
    parse_chat_request,
)
from ..infra.config import get_config
from ..infra.llm import build_language_model
from ..infra.memory_store import build_conversation_store
from ..observability.logging_utils import init_logging, log_error, log_event
from ..observability.otel import init_otel, instrument_fastapi
from ..schemas import ChatResponse
from ..tools.registry import ToolRegistry


@lru_cache(maxsize=1)
def get_orchestrator() -> ChatOrchestrator:
    cfg = get_config()
    return ChatOrchestrator(
        ToolRegistry.from_config(cfg),
        build_conversation_store(cfg),
        build_language_model(cfg),
        config=cfg,
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    cfg = get_config()
    init_logging(log_path=cfg.log_path)
    init_otel()
    yield
    if get_orchestrator.cache_info().currsize:
        get_orchestrator().close()


app = FastAPI(title="Siap Panen", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
instrument_fastapi(app)


def _invalid_request(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": {"code": "invalid_request", "message": message}},
    )


def _chat_json(response: ChatResponse) -> JSONResponse:
    return JSONResponse(content=response.model_dump(mode="json", by_alias=True))


@app.exception_handler(InvalidChatRequest)
async def _invalid_chat_request_handler(_: Request, exc: InvalidChatRequest):
    return _invalid_request(str(exc))


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    log_error("api_unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "Terjadi kesalahan server"}},
    )


@app.get("/health")
async def health():
    cfg = get_config()
    return {"status": "ok", "llm": cfg.llm_provider}


@app.get("/api/tools")
async def list_tools():
    registry = get_orchestrator().registry
    return {
        "tools": [
            tool.model_dump(mode="json", by_alias=True) for tool in registry.list_tools()
        ],
        "stats": registry.usage_stats(),
    }


@app.post("/api/chat")
async def chat(request: Request):
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _invalid_request("request body must be valid JSON")
    chat_request = parse_chat_request(payload)

    orchestrator = get_orchestrator()
    cancel_event = Event()
    timeout = get_config().request_timeout_seconds
    try:
        response = await asyncio.wait_for(
            run_in_threadpool(orchestrator.handle, chat_request, cancel_event),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        cancel_event.set()
        log_event(
            "request_timeout",
            timeout_seconds=timeout,
            conversation_id=chat_request.conversation_id,
        )
        response = apology_response()
    return _chat_json(response)
