"""
Sentry error tracking configuration for Goalpost.

Initializes Sentry SDK with FastAPI, Starlette, and asyncio integrations.
Drops expected client errors (4xx HTTPExceptions and domain errors that map
to 4xx responses) to reduce noise.

When ``dsn`` is empty (the default), Sentry is completely disabled:
no SDK overhead, no network calls.
"""

import logging

import sentry_sdk
from fastapi import HTTPException
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from app.config import AppEnv
from app.core.exceptions import GoalpostError


def init_sentry(
    dsn: str,
    app_env: AppEnv,
    app_version: str,
    traces_sample_rate: float = 0.1,
    profiles_sample_rate: float = 0.1,
) -> None:
    """
    Initialize Sentry SDK for error tracking and performance monitoring.

    Args:
        dsn: Sentry DSN. Empty string disables Sentry entirely.
        app_env: Current environment (used as Sentry ``environment``).
        app_version: Application version (used as Sentry ``release``).
        traces_sample_rate: Fraction of transactions to trace (0.0–1.0).
        profiles_sample_rate: Fraction of transactions to profile (0.0–1.0).
    """
    if not dsn:
        return

    sentry_sdk.init(
        dsn=dsn,
        environment=app_env.value,
        release=f"goalpost@{app_version}",
        traces_sample_rate=traces_sample_rate,
        profiles_sample_rate=profiles_sample_rate,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            StarletteIntegration(transaction_style="endpoint"),
            AsyncioIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        before_send=_filter_events,
        send_default_pii=False,
    )


def _filter_events(event: dict, hint: dict) -> dict | None:
    """
    Filter Sentry events before sending.

    - Drops 4xx HTTPException events and GoalpostError subclasses
      (both are expected client errors).
    - Tags a bare GoalpostError (a 500) with its type and details.
    - Otherwise passes the event through unchanged.
    """
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]

        if isinstance(exc_value, HTTPException) and exc_value.status_code < 500:
            return None

        if isinstance(exc_value, GoalpostError):
            if type(exc_value) is not GoalpostError:
                return None
            event.setdefault("tags", {})["error_type"] = type(exc_value).__name__
            if exc_value.details:
                event.setdefault("extra", {}).update(exc_value.details)

    return event
