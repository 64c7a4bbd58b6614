from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..infra.config import AppConfig, get_config


TREND_ALIASES = {
    "naik": "naik",
    "up": "naik",
    "rising": "naik",
    "turun": "turun",
    "down": "turun",
    "falling": "turun",
    "stabil": "stabil",
    "stable": "stabil",
    "flat": "stabil",
}
PRICE_KEYS = ("harga_per_kg", "harga", "price", "modal_price")


class PriceSourceError(RuntimeError):
    """A price source could not produce a quote."""


@dataclass(frozen=True)
class PriceQuote:
    harga_per_kg: int
    trend: Optional[str]
    sumber: str


class PriceSource(Protocol):
    name: str

    def fetch(self, produk: str, lokasi: str) -> PriceQuote: ...


def build_headers(api_key: Optional[str]) -> Dict[str, str]:
    headers = {"Accept": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def _first_record(payload: Any) -> Optional[Dict[str, Any]]:
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"]
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    return payload if isinstance(payload, dict) else None


def parse_quote(source_name: str, payload: Any) -> PriceQuote:
    record = _first_record(payload)
    if record is None:
        raise PriceSourceError(f"{source_name}: empty or malformed payload")
    price = None
    for key in PRICE_KEYS:
        value = record.get(key)
        if value in (None, ""):
            continue
        try:
            price = float(value)
        except (TypeError, ValueError):
            continue
        break
    if price is None or price <= 0:
        raise PriceSourceError(f"{source_name}: payload has no usable price")
    raw_trend = str(record.get("trend") or record.get("tren") or "").strip().lower()
    return PriceQuote(
        harga_per_kg=int(round(price)),
        trend=TREND_ALIASES.get(raw_trend),
        sumber=source_name,
    )


class HttpPriceSource:
    """JSON price endpoint queried with ``?komoditas=&lokasi=``."""

    def __init__(
        self,
        name: str,
        api_url: Optional[str],
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.name = name
        self._api_url = api_url
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def fetch(self, produk: str, lokasi: str) -> PriceQuote:
        if not self._api_url:
            raise PriceSourceError(f"{self.name}: not configured")
        try:
            with httpx.Client(
                timeout=self._timeout, trust_env=False, transport=self._transport
            ) as client:
                response = client.get(
                    self._api_url,
                    params={"komoditas": produk, "lokasi": lokasi},
                    headers=build_headers(self._api_key),
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PriceSourceError(f"{self.name}: request failed: {exc}") from exc
        return parse_quote(self.name, payload)


def build_price_sources(cfg: Optional[AppConfig] = None) -> List[PriceSource]:
    cfg = cfg or get_config()
    return [
        HttpPriceSource(
            "primary",
            cfg.price_primary_url,
            api_key=cfg.price_primary_api_key,
            timeout=cfg.price_timeout_seconds,
        ),
        HttpPriceSource(
            "secondary",
            cfg.price_secondary_url,
            api_key=cfg.price_secondary_api_key,
            timeout=cfg.price_timeout_seconds,
        ),
    ]
