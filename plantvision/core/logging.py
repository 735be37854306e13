"""Observability setup on Pydantic Logfire.

Modules log through ``logging.getLogger(__name__)``; Logfire picks those records up once
``configure_logfire`` has run. Service functions wrap their work in ``span(...)``.
"""

import logging

import logfire
from fastapi import FastAPI

from plantvision.core.config import settings
from plantvision.domain.user import Caller


logger = logging.getLogger(__name__)

# Attribute names Logfire must redact in addition to its defaults
SCRUBBED_FIELDS = ["password_hash", "refresh_token", "access_token", "current_password", "new_password"]


def configure_logfire() -> None:
    logfire.configure(
        token=settings.logfire_token,
        service_name="plantvision",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
        scrubbing=logfire.ScrubbingOptions(extra_patterns=SCRUBBED_FIELDS),
    )
    logging.basicConfig(handlers=[logfire.LogfireLoggingHandler()], level=logging.INFO, force=True)
    logger.info("Logfire configured", extra={"environment": settings.environment})


def instrument_fastapi(app: FastAPI) -> None:
    logfire.instrument_fastapi(app, excluded_urls="/health")


def span(name: str) -> logfire.LogfireSpan:
    """Open a Logfire span named ``<module>.<operation>``, e.g. ``task_service.create_task``."""
    return logfire.span(name)


def log_caller_event(target: logging.Logger, level: str, message: str, caller: Caller, **extra: object) -> None:
    """Log a message tagged with who acted: user id, role and plant area."""
    context = {"user_id": caller.id, "role": caller.role.value, "plant_area": caller.plant_area, **extra}
    getattr(target, level.lower())(message, extra=context)
