"""Page and user context derived from request data.

Server-side counterparts of the browser readers: everything is inferred from
the URL and headers the client sent. Pure functions, no state.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlsplit

from services.event_models import DeviceType, PageContext, UserContext

_MOBILE_RE = re.compile(r"mobile|android|iphone|ipod|phone", re.IGNORECASE)
_TABLET_RE = re.compile(r"tablet|ipad", re.IGNORECASE)
_VERSION_RE = re.compile(r"(edg|opr|chrome|firefox|version|safari)/(\d+(?:\.\d+)?)", re.IGNORECASE)

# Checked in order; Edge and Opera also announce Chrome and Safari.
_BROWSERS: tuple[tuple[str, str], ...] = (
    ("edg/", "Edge"),
    ("opr/", "Opera"),
    ("firefox/", "Firefox"),
    ("chrome/", "Chrome"),
    ("safari/", "Safari"),
)

_PLATFORMS: tuple[tuple[str, str], ...] = (
    ("windows", "Windows"),
    ("iphone", "iOS"),
    ("ipad", "iOS"),
    ("android", "Android"),
    ("mac os", "macOS"),
    ("cros", "ChromeOS"),
    ("linux", "Linux"),
)


def detect_device_type(user_agent: str | None, screen_width: int | None = None) -> DeviceType:
    """Classify a device from its user agent, falling back to screen width."""
    ua = user_agent or ""
    if _TABLET_RE.search(ua):
        return DeviceType.TABLET
    if _MOBILE_RE.search(ua):
        return DeviceType.MOBILE
    if screen_width is None:
        return DeviceType.DESKTOP if ua else DeviceType.UNKNOWN
    if screen_width < 768:
        return DeviceType.MOBILE
    if screen_width < 1024:
        return DeviceType.TABLET
    return DeviceType.DESKTOP


def parse_browser(user_agent: str | None) -> tuple[str, str]:
    """Return ``(name, version)``; ``("Unknown", "unknown")`` when unrecognized."""
    ua = (user_agent or "").lower()
    name = "Unknown"
    for token, label in _BROWSERS:
        if token in ua:
            name = label
            break

    version = "unknown"
    wanted = {
        "Edge": "edg",
        "Opera": "opr",
        "Firefox": "firefox",
        "Chrome": "chrome",
        "Safari": "version",
    }.get(name)
    for match in _VERSION_RE.finditer(user_agent or ""):
        if match.group(1).lower() == wanted:
            version = match.group(2)
            break
    return name, version


def parse_platform(user_agent: str | None) -> str:
    """Operating system family, or ``"unknown"``."""
    ua = (user_agent or "").lower()
    for token, label in _PLATFORMS:
        if token in ua:
            return label
    return "unknown"


def parse_language(accept_language: str | None) -> str:
    """Primary language tag from an ``Accept-Language`` header."""
    if not accept_language:
        return "en"
    first = accept_language.split(",")[0].split(";")[0].strip()
    return first or "en"


def build_page_context(
    url: str,
    title: str = "",
    referrer: str | None = None,
    load_time: float | None = None,
) -> PageContext:
    """Split a full URL into the page context fields."""
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query)) if parts.query else None
    return PageContext(
        path=parts.path or "/",
        title=title,
        url=url,
        referrer=referrer or None,
        query_params=query,
        hash=f"#{parts.fragment}" if parts.fragment else None,
        load_time=load_time,
    )


def build_user_context(
    user_agent: str | None,
    accept_language: str | None = None,
    *,
    screen_resolution: str = "unknown",
    viewport_size: str = "unknown",
    timezone: str = "UTC",
    session_start_time: int = 0,
    page_views: int = 1,
    is_first_visit: bool = True,
) -> UserContext:
    """User context from request headers and whatever the client reported.

    The screen width in ``screen_resolution`` (``"1920x1080"``) breaks ties
    when the user agent names no device class.
    """
    screen_width = None
    if "x" in screen_resolution:
        width, _, _height = screen_resolution.partition("x")
        if width.isdigit():
            screen_width = int(width)

    browser_name, browser_version = parse_browser(user_agent)
    return UserContext(
        device_type=detect_device_type(user_agent, screen_width),
        screen_resolution=screen_resolution,
        viewport_size=viewport_size,
        user_agent=user_agent or "unknown",
        browser_name=browser_name,
        browser_version=browser_version,
        platform=parse_platform(user_agent),
        timezone=timezone,
        language=parse_language(accept_language),
        is_first_visit=is_first_visit,
        session_start_time=session_start_time,
        page_views=page_views,
    )
