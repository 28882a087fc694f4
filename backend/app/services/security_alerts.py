"""
services/security_alerts.py — Notification hook for suspicious token activity.

Delivery to the customer (email, push) is handled elsewhere; this module is
the seam. Alerts are written to the "backend.security" logger, which a log
shipper or mail handler can subscribe to.

Alerts must never break the request that triggered them: every public
function here swallows and logs its own failures.
"""

from __future__ import annotations

import logging

from backend.app.services.device_info import extract_device_info

logger = logging.getLogger("backend.security")

INCIDENT_REFRESH_TOKEN_REUSE = "REFRESH_TOKEN_REUSE"
INCIDENT_NEW_DEVICE = "NEW_DEVICE"


def notify_possible_account_compromise(
        user_id: int,
        ip_address: str | None,
        user_agent: str | None,
        incident_type: str = INCIDENT_REFRESH_TOKEN_REUSE,
) -> None:
    """Raised when an already-revoked refresh token is presented again."""
    try:
        logger.warning(
            "SECURITY ALERT %s: possible account compromise for user_id=%s "
            "ip=%s device=%s",
            incident_type,
            user_id,
            ip_address,
            extract_device_info(user_agent),
        )
    except Exception:  # noqa: BLE001
        logger.exception("Failed to emit account-compromise alert for user_id=%s", user_id)


def notify_new_device_login(
        user_id: int,
        ip_address: str | None,
        user_agent: str | None,
) -> None:
    """Raised when a refresh comes from an IP and User-Agent both unseen for that token."""
    try:
        logger.info(
            "SECURITY NOTICE %s: user_id=%s refreshed from ip=%s device=%s",
            INCIDENT_NEW_DEVICE,
            user_id,
            ip_address,
            extract_device_info(user_agent),
        )
    except Exception:  # noqa: BLE001
        logger.exception("Failed to emit new-device notice for user_id=%s", user_id)
