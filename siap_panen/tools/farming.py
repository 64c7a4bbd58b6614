from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Optional

import httpx

from ..observability.logging_utils import log_event
from .price_sources import build_headers


HARVEST_DAYS = 90
WEATHER_TIMEOUT = 10.0


def format_number(value: float) -> str:
    """Render 2.0 as "2" and 1.5 as "1.5"."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def canned_weather(lokasi: str) -> str:
    return f"Cuaca di {lokasi}: cerah, curah hujan rendah."


def normalize_provider(value: Optional[str]) -> str:
    return (value or "mock").strip().lower()


@dataclass(frozen=True)
class Requirements:
    luas_ha: float
    total_pupuk_kg: float
    total_air_liter: float


def compute_requirements(
    luas_ha: float, dosis_kg_per_ha: float, air_liter_per_ha: float
) -> Requirements:
    return Requirements(
        luas_ha=luas_ha,
        total_pupuk_kg=luas_ha * dosis_kg_per_ha,
        total_air_liter=luas_ha * air_liter_per_ha,
    )


def _weather_summary(lokasi: str, payload: Any) -> Optional[str]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        payload = payload["data"]
    if not isinstance(payload, dict):
        return None
    condition = payload.get("kondisi") or payload.get("condition") or payload.get("description")
    if not condition:
        return None
    parts = [f"Cuaca di {lokasi}: {condition}"]
    temperature = payload.get("suhu", payload.get("temperature"))
    if temperature is not None:
        parts.append(f"suhu {temperature}°C")
    rain = payload.get("curah_hujan", payload.get("rainfall"))
    if rain is not None:
        parts.append(f"curah hujan {rain} mm")
    return ", ".join(parts) + "."


class FarmingTools:
    """Weather, planting schedule and input requirement tools."""

    def __init__(
        self,
        *,
        weather_provider: str = "mock",
        weather_api_url: Optional[str] = None,
        weather_api_key: Optional[str] = None,
        clock: Callable[[], date] = date.today,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._weather_provider = normalize_provider(weather_provider)
        self._weather_api_url = weather_api_url
        self._weather_api_key = weather_api_key
        self._clock = clock
        self._transport = transport

    def cek_cuaca(self, lokasi: str) -> str:
        if self._weather_provider != "http" or not self._weather_api_url:
            return canned_weather(lokasi)
        try:
            with httpx.Client(
                timeout=WEATHER_TIMEOUT, trust_env=False, transport=self._transport
            ) as client:
                response = client.get(
                    self._weather_api_url,
                    params={"lokasi": lokasi},
                    headers=build_headers(self._weather_api_key),
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            log_event("weather_provider_error", lokasi=lokasi, error=str(exc))
            return canned_weather(lokasi)
        return _weather_summary(lokasi, payload) or canned_weather(lokasi)

    def buat_jadwal_tanam(self, tanaman: str, tanggal: Optional[date] = None) -> str:
        start = tanggal or self._clock()
        harvest = start + timedelta(days=HARVEST_DAYS)
        return (
            f"Jadwal tanam untuk {tanaman} dimulai {start.isoformat()}, panen sekitar "
            f"{HARVEST_DAYS} hari kemudian (perkiraan {harvest.isoformat()})."
        )

    def hitung_kebutuhan(
        self, luas_ha: float, dosis_kg_per_ha: float, air_liter_per_ha: float
    ) -> str:
        needs = compute_requirements(luas_ha, dosis_kg_per_ha, air_liter_per_ha)
        return (
            f"Untuk {format_number(needs.luas_ha)} ha: butuh "
            f"{format_number(needs.total_pupuk_kg)} kg pupuk & "
            f"{format_number(needs.total_air_liter)} liter air."
        )
