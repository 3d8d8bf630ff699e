from asyncio import iscoroutinefunction
from contextlib import contextmanager
from enum import Enum
from functools import wraps
from os import environ

from azure.monitor.opentelemetry import configure_azure_monitor
from opentelemetry import trace
from opentelemetry.semconv.attributes import service_attributes
from opentelemetry.trace import Status, StatusCode
from opentelemetry.trace.span import INVALID_SPAN
from opentelemetry.util.types import Attributes, AttributeValue
from structlog.contextvars import bind_contextvars

MODULE_NAME = "com.github.family-reminders"
VERSION = environ.get("VERSION", "0.0.0-unknown")


class SpanAttributeEnum(str, Enum):
    """
    OpenTelemetry attributes.

    These attributes are used to track a reminder in the logs and traces.
    """

    COMPLETION_REQUESTED = "completion.requested"
    """Completion flag requested by the caller."""
    FAMILY_ID = "family.id"
    """Technical family identifier."""
    REMINDER_ID = "reminder.id"
    """Technical reminder identifier."""
    REMINDER_RECURRENCE = "reminder.recurrence"
    """Recurrence type of the reminder (e.g. once, weekly, ...)."""

    def attribute(
        self,
        value: AttributeValue,
    ) -> None:
        """
        Set an attribute on the current span.
        """
        # Enrich logging
        bind_contextvars(**{self.value: value})

        # Enrich span
        span = trace.get_current_span()
        if span == INVALID_SPAN:
            return
        span.set_attribute(self.value, value)


# Only configure the exporter when a destination is set, tests and local runs stay offline
if environ.get("APPLICATIONINSIGHTS_CONNECTION_STRING"):
    try:
        # Configure Azure Application Insights exporter
        configure_azure_monitor()
    except ValueError as e:
        print(  # noqa: T201
            "Azure Application Insights instrumentation failed, the APPLICATIONINSIGHTS_CONNECTION_STRING environment variable is likely invalid.",
            e,
        )

# Attributes
_default_attributes = {
    service_attributes.SERVICE_NAME: MODULE_NAME,
    service_attributes.SERVICE_VERSION: VERSION,
}

# Create a tracer that will be used across the application
tracer = trace.get_tracer(
    attributes=_default_attributes,
    instrumenting_module_name=MODULE_NAME,
)


def start_as_current_span(
    name: str,
    attributes: Attributes = None,
):
    """
    Decorator to start an OTEL span for the function and set it as the current.
    """

    def _wrapper(func):
        @wraps(func)
        def _inner(*args, **kwargs):
            # Start a span
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                # Call the function
                return func(*args, **kwargs)

        @wraps(func)
        async def _async_inner(*args, **kwargs):
            # Start a span
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                # Call the function
                return await func(*args, **kwargs)

        return _async_inner if iscoroutinefunction(func) else _inner

    return _wrapper


@contextmanager
def suppress(*exceptions):
    """
    Context manager to suppress exceptions, while also logging them properly in OTEL.

    OTEL span will always be set to OK status, even if an exception occurs. But exception will still be recorded.
    """
    try:
        # Try executing the block
        yield
    # If an exception occurs, set the span status to OK and record the exception
    except exceptions as e:
        span = trace.get_current_span()
        span.set_status(Status(StatusCode.OK))
        span.record_exception(e)
