from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode


SERVICE_NAME = "siap-panen"
_OTEL_INITIALIZED = False
_OTEL_INSTRUMENTED = False
_OTEL_ATTR_MAX_LEN = int(os.getenv("OTEL_ATTR_MAX_LEN", "2000"))


def _parse_pairs(raw: Optional[str]) -> Dict[str, str]:
    if not raw:
        return {}
    pairs: Dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item or "=" not in item:
            continue
        key, value = item.split("=", 1)
        key = key.strip()
        value = value.strip()
        if key and value:
            pairs[key] = value
    return pairs


def _attribute_value(value: object) -> object:
    if isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, ensure_ascii=False, default=str)
    if _OTEL_ATTR_MAX_LEN and len(text) > _OTEL_ATTR_MAX_LEN:
        return text[:_OTEL_ATTR_MAX_LEN] + "..."
    return text


def _tracer() -> trace.Tracer:
    return trace.get_tracer(os.getenv("OTEL_SERVICE_NAME") or SERVICE_NAME)


@contextmanager
def start_span(name: str, attributes: Optional[Dict[str, object]] = None) -> Iterator[Span]:
    with _tracer().start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is None:
                continue
            span.set_attribute(key, _attribute_value(value))
        yield span


def record_exception(span: Optional[Span], exc: BaseException) -> None:
    if span is None:
        return None
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, type(exc).__name__))


def _resolve_http_endpoint(
    base: Optional[str], signal: str, override: Optional[str]
) -> Optional[str]:
    endpoint = (override or base or "").strip()
    if not endpoint:
        return None
    if "/v1/" in endpoint:
        return endpoint
    return endpoint.rstrip("/") + f"/v1/{signal}"


def init_otel(service_name: Optional[str] = None) -> bool:
    """Install an OTLP trace exporter when OTEL_EXPORTER_OTLP_* is configured.

    The exporter packages are an optional extra; without them (or without an
    endpoint) spans stay on the API's no-op tracer and this returns False.
    """
    global _OTEL_INITIALIZED
    if _OTEL_INITIALIZED:
        return True
    base_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    traces_endpoint_env = os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
    exporter_name = (os.getenv("OTEL_TRACES_EXPORTER") or "otlp").strip().lower()
    if exporter_name in {"none", "off", "false", "0"}:
        return False
    if not (base_endpoint or traces_endpoint_env):
        return False
    protocol = (os.getenv("OTEL_EXPORTER_OTLP_PROTOCOL") or "grpc").strip().lower()
    use_http = protocol.startswith("http")

    try:
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        if use_http:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )
        else:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )
    except ImportError:
        logging.getLogger(__name__).warning(
            "OTLP endpoint configured but opentelemetry exporters are not installed"
        )
        return False

    endpoint = (
        _resolve_http_endpoint(base_endpoint, "traces", traces_endpoint_env)
        if use_http
        else (traces_endpoint_env or base_endpoint)
    )
    service = service_name or os.getenv("OTEL_SERVICE_NAME") or SERVICE_NAME
    resource = Resource.create(
        {
            "service.name": service,
            **_parse_pairs(os.getenv("OTEL_RESOURCE_ATTRIBUTES")),
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(
                endpoint=endpoint,
                headers=_parse_pairs(os.getenv("OTEL_EXPORTER_OTLP_HEADERS")),
            )
        )
    )
    trace.set_tracer_provider(provider)
    _OTEL_INITIALIZED = True
    return True


def instrument_fastapi(app: object) -> bool:
    global _OTEL_INSTRUMENTED
    if _OTEL_INSTRUMENTED:
        return True
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
    except ImportError:
        return False
    FastAPIInstrumentor.instrument_app(app)
    HTTPXClientInstrumentor().instrument()
    _OTEL_INSTRUMENTED = True
    return True
