import hashlib
from typing import Awaitable, Optional

from schemagraph.common.observability.context import crawl_id_var, source_id_var
from schemagraph.common.observability.metrics import is_metrics_enabled


def trace_enabled() -> bool:
    """Return True when adapter query tracing is enabled or an OTEL exporter is configured."""
    return is_metrics_enabled("DAL_TRACE_QUERIES")


def _hash_statement(statement: str) -> str:
    return hashlib.sha256(statement.encode("utf-8")).hexdigest()


async def trace_query_operation(
    name: str,
    provider: str,
    execution_model: str,
    statement: Optional[str],
    operation: Awaitable,
):
    """Await an adapter operation inside an OTEL span when tracing is enabled."""
    if not trace_enabled():
        return await operation

    from opentelemetry import trace

    tracer = trace.get_tracer("schemagraph.dal")
    with tracer.start_as_current_span(name) as span:
        crawl_id = crawl_id_var.get()
        if crawl_id:
            span.set_attribute("crawl_id", crawl_id)
        source_id = source_id_var.get()
        if source_id:
            span.set_attribute("source_id", source_id)
        span.set_attribute("db.provider", provider)
        span.set_attribute("db.execution_model", execution_model)
        if statement:
            span.set_attribute("db.statement_hash", _hash_statement(statement))
        try:
            result = await operation
        except Exception:
            span.set_attribute("db.status", "error")
            raise
        span.set_attribute("db.status", "ok")
        return result
