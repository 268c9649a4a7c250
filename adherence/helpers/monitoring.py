from asyncio import iscoroutinefunction
from contextlib import contextmanager
from enum import Enum
from functools import wraps
from os import environ

from azure.monitor.opentelemetry import configure_azure_monitor
from opentelemetry import metrics, trace
from opentelemetry.metrics._internal.instrument import Counter
from opentelemetry.semconv.attributes import service_attributes
from opentelemetry.trace import Status, StatusCode
from opentelemetry.trace.span import INVALID_SPAN
from opentelemetry.util.types import Attributes, AttributeValue
from structlog.contextvars import bind_contextvars, get_contextvars

MODULE_NAME = "medication-adherence"
VERSION = environ.get("VERSION", "0.0.0-unknown")


class SpanAttributeEnum(str, Enum):
    """
    OpenTelemetry attributes.

    These attributes are used to track a reminder in the logs and metrics.
    """

    MEDICINE_ID = "medicine.id"
    """Technical medicine identifier."""
    NOTIFICATION_KIND = "notification.kind"
    """Notification class (e.g. reminder, missed, adherence, ...)."""
    OWNER_ID = "owner.id"
    """Technical identifier of the medicine owner."""
    REMINDER_ID = "reminder.id"
    """Technical reminder event identifier."""

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


class SpanMeterEnum(str, Enum):
    NOTIFICATION_FAILED = "notification.failed"
    """Notifications the gateway could not deliver."""
    NOTIFICATION_SENT = "notification.sent"
    """Notifications delivered to the gateway."""
    REMINDER_CREATED = "reminder.created"
    """Reminder events created by the scheduler."""
    REMINDER_MISSED = "reminder.missed"
    """Reminder events declared missed by the sweeper."""
    REMINDER_SUPPRESSED = "reminder.suppressed"
    """Duplicate reminder events not created."""
    SCHEDULE_MALFORMED = "schedule.malformed"
    """Configured times skipped because they are not valid."""
    TICK_ERRORS = "tick.errors"
    """Failed units of work within a tick."""

    def counter(
        self,
        unit: str,
    ) -> Counter:
        """
        Create a counter metric to track a span counter.
        """
        return meter.create_counter(
            description=self.__doc__ or "",
            name=self.value,
            unit=unit,
        )


try:
    # Configure Azure Application Insights exporter
    configure_azure_monitor()
except ValueError as e:
    print(  # noqa: T201
        "Azure Application Insights instrumentation failed, likely due to a missing APPLICATIONINSIGHTS_CONNECTION_STRING environment variable.",
        e,
    )

# Attributes
_default_attributes = {
    service_attributes.SERVICE_NAME: MODULE_NAME,
    service_attributes.SERVICE_VERSION: VERSION,
}

# Create a tracer and meter that will be used across the application
tracer = trace.get_tracer(
    attributes=_default_attributes,
    instrumenting_module_name=MODULE_NAME,
)
meter = metrics.get_meter(
    name=MODULE_NAME,
)

# Init metrics
notification_failed = SpanMeterEnum.NOTIFICATION_FAILED.counter("messages")
notification_sent = SpanMeterEnum.NOTIFICATION_SENT.counter("messages")
reminder_created = SpanMeterEnum.REMINDER_CREATED.counter("reminders")
reminder_missed = SpanMeterEnum.REMINDER_MISSED.counter("reminders")
reminder_suppressed = SpanMeterEnum.REMINDER_SUPPRESSED.counter("reminders")
schedule_malformed = SpanMeterEnum.SCHEDULE_MALFORMED.counter("entries")
tick_errors = SpanMeterEnum.TICK_ERRORS.counter("errors")


def counter_add(
    metric: Counter,
    value: float | int,
):
    """
    Add a counter metric value with context attributes.

    Zero values are ignored, there is nothing to report.
    """
    if not value:
        return
    metric.add(
        amount=value,
        attributes={
            # First, set default attributes
            **_default_attributes,
            # Then, set context attributes, they can override default attributes
            **get_contextvars(),
        },
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
