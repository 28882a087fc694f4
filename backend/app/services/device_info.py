"""
services/device_info.py — User-Agent parsing for session metadata.

Produces a short human-readable label ("Windows 10 - Chrome - Desktop") that
is stored with each refresh token and shown in the active-sessions list and
in security alerts. Substring matching only; order of checks matters because
many User-Agent strings mention several engines (Edge contains "Chrome",
Chrome contains "Safari").
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

UNKNOWN_OS = "Unknown OS"
UNKNOWN_BROWSER = "Unknown Browser"
DEVICE_TYPE_MOBILE = "Mobile"
DEVICE_TYPE_TABLET = "Tablet"
DEVICE_TYPE_DESKTOP = "Desktop"

_WINDOWS_VERSIONS = (
    ("Windows NT 10.0", "Windows 10"),
    ("Windows NT 6.3", "Windows 8.1"),
    ("Windows NT 6.2", "Windows 8"),
    ("Windows NT 6.1", "Windows 7"),
)

_MACOS_VERSIONS = (
    ("Mac OS X 10_15", "macOS Catalina"),
    ("Mac OS X 11", "macOS Big Sur"),
    ("Mac OS X 12", "macOS Monterey"),
    ("Mac OS X 13", "macOS Ventura"),
    ("Mac OS X 14", "macOS Sonoma"),
    ("Mac OS X 15", "macOS Sequoia"),
)

_IOS_VERSIONS = (
    ("OS 17", "iOS 17"),
    ("OS 16", "iOS 16"),
    ("OS 15", "iOS 15"),
)


def extract_device_info(user_agent: str | None) -> str | None:
    """Returns "<OS> - <Browser> - <DeviceType>", or None for an empty User-Agent."""
    if not user_agent:
        return None

    info = " - ".join((
        extract_os(user_agent),
        extract_browser(user_agent),
        extract_device_type(user_agent),
    ))
    logger.debug("Device info extracted: %s", info)
    return info


def extract_os(user_agent: str) -> str:
    if "Windows" in user_agent:
        for marker, name in _WINDOWS_VERSIONS:
            if marker in user_agent:
                return name
        return "Windows"

    # iPhone/iPad UAs contain "like Mac OS X", so check them before macOS.
    if "iPhone" in user_agent or "iPad" in user_agent:
        for marker, name in _IOS_VERSIONS:
            if marker in user_agent:
                return name
        return "iOS"

    if "Mac OS X" in user_agent:
        for marker, name in _MACOS_VERSIONS:
            if marker in user_agent:
                return name
        return "macOS"

    if "Android" in user_agent:
        _, _, tail = user_agent.partition("Android ")
        version = tail.split(";")[0].split(")")[0].strip()
        return f"Android {version}" if version else "Android"

    if "Ubuntu" in user_agent:
        return "Ubuntu"
    if "CrOS" in user_agent:
        return "Chrome OS"
    if "Linux" in user_agent:
        return "Linux"

    return UNKNOWN_OS


def extract_browser(user_agent: str) -> str:
    mobile = "Mobile" in user_agent

    if "Edg/" in user_agent:
        return "Edge"
    if "OPR/" in user_agent or "Opera/" in user_agent:
        return "Opera"
    if "Chrome/" in user_agent:
        return "Chrome Mobile" if mobile else "Chrome"
    if "Firefox/" in user_agent:
        return "Firefox Mobile" if mobile else "Firefox"
    if "Safari/" in user_agent:
        return "Safari Mobile" if mobile else "Safari"
    if "MSIE" in user_agent or "Trident/" in user_agent:
        return "Internet Explorer"

    return UNKNOWN_BROWSER


def extract_device_type(user_agent: str) -> str:
    if "iPad" in user_agent or DEVICE_TYPE_TABLET in user_agent:
        return DEVICE_TYPE_TABLET
    if DEVICE_TYPE_MOBILE in user_agent or "Android" in user_agent or "iPhone" in user_agent:
        return DEVICE_TYPE_MOBILE
    return DEVICE_TYPE_DESKTOP


def is_same_origin(
        stored_ip: str | None,
        stored_user_agent: str | None,
        ip_address: str | None,
        user_agent: str | None,
) -> bool:
    """
    Flexible origin check: the request counts as coming from the same client
    when EITHER the IP or the User-Agent matches. A missing value on either
    side counts as a match.
    """
    same_ip = stored_ip is None or ip_address is None or stored_ip == ip_address
    same_agent = (
        stored_user_agent is None
        or user_agent is None
        or stored_user_agent == user_agent
    )
    return same_ip or same_agent
