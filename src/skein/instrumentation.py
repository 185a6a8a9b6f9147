"""Optional OpenTelemetry instrumentation for skein.

Call ``skein.instrument()`` once at startup to enable tracing. Requires
``opentelemetry-api`` (``pip install skein[otel]``); without it every
span helper below is a no-op yielding ``None``.

Example::

    from opentelemetry import trace
    from opentelemetry.sdk.trace import TracerProvider

    trace.set_tracer_provider(TracerProvider())

    import skein
    skein.instrument()
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "skein") -> None:
    """Enable OpenTelemetry spans for turns, completions and tool runs.

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install skein[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured, spans will be discarded."
        )
    else:
        logger.info("skein instrumentation enabled")


def uninstrument() -> None:
    """Disable tracing; later operations emit no spans."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def turn_span(task_id: str, turn_id: str):
    """Wrap the presentation of one assistant turn."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"present_turn {turn_id}",
        attributes={
            "skein.task.id": task_id,
            "skein.turn.id": turn_id,
        },
    ) as span:
        yield span


@asynccontextmanager
async def completion_span(system: str, model: str):
    """Wrap a provider stream in a ``chat`` span."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
        },
    ) as span:
        yield span


@asynccontextmanager
async def tool_span(tool_name: str, call_id: str):
    """Wrap one tool execution in an ``execute_tool`` span."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"execute_tool {tool_name}",
        attributes={
            "gen_ai.operation.name": "execute_tool",
            "gen_ai.tool.name": tool_name,
            "gen_ai.tool.call.id": call_id,
        },
    ) as span:
        yield span


def record_usage(span, usage) -> None:
    """Copy token counts from a :class:`~skein.streaming.UsageChunk`."""
    if span is None or usage is None:
        return
    span.set_attribute("gen_ai.usage.input_tokens", usage.input_tokens)
    span.set_attribute("gen_ai.usage.output_tokens", usage.output_tokens)
    if usage.total_cost is not None:
        span.set_attribute("skein.usage.total_cost", usage.total_cost)


def record_outcome(span, is_error: bool) -> None:
    if span is None:
        return
    span.set_attribute("skein.tool.is_error", is_error)


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
