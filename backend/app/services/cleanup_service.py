"""
services/cleanup_service.py — Periodic purge of expired refresh tokens.

The sweep is one DELETE statement (token_store.delete_expired_before). It may
run while rotations are in flight; it takes no lock beyond the statement's
own transaction and never touches unexpired rows.

Scheduling:
  Each Flask app gets its own APScheduler BackgroundScheduler, created by
  start_cleanup_scheduler() and stored in app.extensions["token_cleanup"].
  The job never raises: a failed run is logged and the next tick proceeds.

Config keys:
  REFRESH_TOKEN_CLEANUP_ENABLED        start the scheduler at all
  REFRESH_TOKEN_CLEANUP_CRON           5-field crontab (UTC), default "0 3 * * *"
  REFRESH_TOKEN_CLEANUP_MISFIRE_GRACE  seconds a late run may still fire
"""

from __future__ import annotations

import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import Flask
from sqlalchemy.orm import Session

from backend.app.extensions import db
from backend.app.models.refresh_token import utcnow
from backend.app.services import token_store

logger = logging.getLogger(__name__)

JOB_ID = "refresh-token-cleanup"
EXTENSION_KEY = "token_cleanup"


def purge_expired_tokens(session: Session, now: datetime | None = None) -> int:
    """Deletes every refresh token that expired before `now` and commits."""
    now = now or utcnow()
    deleted = token_store.delete_expired_before(now, session)
    session.commit()
    logger.info("Deleted %d expired refresh tokens", deleted)
    return deleted


def run_scheduled_cleanup(app: Flask) -> int | None:
    """
    Scheduler entry point. Returns the deleted count, or None if the run failed.
    """
    with app.app_context():
        logger.info("Starting scheduled cleanup of expired refresh tokens")
        try:
            return purge_expired_tokens(db.session)
        except Exception:  # noqa: BLE001
            db.session.rollback()
            logger.exception("Refresh token cleanup failed; will retry on next schedule")
            return None


def build_trigger(cron_expression: str) -> CronTrigger:
    """Parses a standard 5-field crontab expression into a UTC trigger."""
    return CronTrigger.from_crontab(cron_expression, timezone="UTC")


def start_cleanup_scheduler(app: Flask) -> BackgroundScheduler | None:
    """
    Starts the cleanup scheduler for `app` when enabled. Returns the scheduler
    (also kept in app.extensions) or None when cleanup is disabled.

    The cron expression is parsed before the scheduler starts so a malformed
    value fails at startup, not at 3 a.m.
    """
    if not app.config.get("REFRESH_TOKEN_CLEANUP_ENABLED", True):
        logger.info("Refresh token cleanup scheduler disabled")
        return None

    cron_expression = app.config.get("REFRESH_TOKEN_CLEANUP_CRON", "0 3 * * *")
    trigger = build_trigger(cron_expression)

    scheduler = BackgroundScheduler(timezone="UTC", daemon=True)
    scheduler.add_job(
        run_scheduled_cleanup,
        trigger=trigger,
        args=[app],
        id=JOB_ID,
        name="Purge expired refresh tokens",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=app.config.get("REFRESH_TOKEN_CLEANUP_MISFIRE_GRACE", 3600),
        replace_existing=True,
    )
    scheduler.start()
    app.extensions[EXTENSION_KEY] = scheduler
    logger.info("Refresh token cleanup scheduled with cron %r (UTC)", cron_expression)
    return scheduler


def stop_cleanup_scheduler(app: Flask) -> None:
    scheduler = app.extensions.pop(EXTENSION_KEY, None)
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
