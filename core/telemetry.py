from typing import Optional

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from sqlalchemy.ext.asyncio import AsyncEngine

# 手動 span 共用的 instrumentation scope
TRACER_NAME = "upi-collect"


def get_tracer() -> trace.Tracer:
    """Tracer for the reconcile / expiry spans; a no-op until setup_telemetry runs."""
    return trace.get_tracer(TRACER_NAME)


def setup_telemetry(
    service_name: str,
    otlp_endpoint: str = "http://localhost:4317",
    service_version: str = "1.0.0",
) -> TracerProvider:
    """
    Export traces over OTLP gRPC (Jaeger / collector)
    :param service_name: api and worker report under their own names
    :param otlp_endpoint: from OTEL_EXPORTER_OTLP_ENDPOINT
    :return: TracerProvider:
    """
    resource = Resource.create(
        attributes={
            "service.name": service_name,
            "service.version": service_version,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)
    return provider


def instrument_app(app: Optional[FastAPI], engine: Optional[AsyncEngine] = None) -> None:
    """
    Auto-instrument the HTTP surface and the libraries it calls into
    :param app: None when running the standalone expiry worker
    :param engine: async engine; the instrumentor hooks its sync_engine
    """
    if app:
        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")

    if engine:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)

    # order cache
    RedisInstrumentor().instrument()

    # merchant callbacks
    HTTPXClientInstrumentor().instrument()
