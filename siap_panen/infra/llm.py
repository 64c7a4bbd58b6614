from __future__ import annotations

from typing import Any, Optional, Protocol

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from .config import AppConfig, get_config


class LanguageModel(Protocol):
    def complete(self, system_prompt: str, user_prompt: str) -> str: ...


def get_chat_model(cfg: Optional[AppConfig] = None) -> BaseChatModel:
    cfg = cfg or get_config()
    if cfg.llm_provider != "openai":
        raise ValueError("Hanya OpenAI yang didukung, set LLM_PROVIDER=openai")
    if not cfg.openai_api_key:
        raise ValueError("OPENAI_API_KEY belum dikonfigurasi")
    kwargs = {
        "api_key": cfg.openai_api_key,
        "temperature": cfg.llm_temperature,
        "model": cfg.llm_model,
        "timeout": cfg.llm_timeout_seconds,
        "max_retries": 0,
    }
    if cfg.openai_api_base:
        kwargs["base_url"] = cfg.openai_api_base
    return ChatOpenAI(**kwargs)


def extract_text(result: Any) -> str:
    content = getattr(result, "content", result)
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict):
                parts.append(str(item.get("text", "")))
            else:
                parts.append(str(item))
        return "".join(parts)
    return str(content or "")


class ChatModelCompleter:
    """``LanguageModel`` over a LangChain chat model; one call, no retries.

    Without an explicit model the client is built from config on first use, so
    a missing API key surfaces as a model failure instead of a startup error.
    """

    def __init__(
        self, model: Optional[BaseChatModel] = None, *, cfg: Optional[AppConfig] = None
    ) -> None:
        self._model = model
        self._cfg = cfg

    def _chat_model(self) -> BaseChatModel:
        if self._model is None:
            self._model = get_chat_model(self._cfg)
        return self._model

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        result = self._chat_model().invoke(
            [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        )
        text = extract_text(result).strip()
        if not text:
            raise ValueError("language model returned an empty response")
        return text


def build_language_model(cfg: Optional[AppConfig] = None) -> LanguageModel:
    return ChatModelCompleter(cfg=cfg)
