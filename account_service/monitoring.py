"""Prometheus metrics: HTTP instrumentation plus account lifecycle counters."""

from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator
from fastapi import FastAPI

ACCOUNT_EVENTS = Counter(
    "account_events_total",
    "Account lifecycle and admin events by kind",
    ["event"],
)

ADMIN_AFFECTED_USERS = Counter(
    "admin_affected_users_total",
    "Users changed by bulk admin actions",
    ["action"],
)


def record_event(event: str) -> None:
    """Count one account event (registered, login_failed, verified, ...)."""
    ACCOUNT_EVENTS.labels(event=event).inc()


def record_admin_action(action: str, count: int) -> None:
    """Count the users touched by one bulk admin action."""
    if count > 0:
        ADMIN_AFFECTED_USERS.labels(action=action).inc(count)


def setup_monitoring(app: FastAPI) -> None:
    """Configure and expose Prometheus metrics endpoint."""
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=False,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health"],
        env_var_name="ENABLE_METRICS",
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )

    instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=True)
