"""
auth/useragent.py -- Coarse device / platform classification of a User-Agent.

Informational only: the result is stored on the session row so a "your
sessions" listing can say "Firefox on Linux"-grade context. Nothing in the
auth core makes an access decision from it.
"""

from __future__ import annotations

# Ordered: first match wins. iPad/Android tablets must be tested before the
# generic mobile markers, and iOS before macOS ("like Mac OS X").
_PLATFORM_MARKERS: tuple[tuple[str, str], ...] = (
    ("iphone", "ios"),
    ("ipad", "ios"),
    ("ipod", "ios"),
    ("android", "android"),
    ("windows", "windows"),
    ("mac os x", "macos"),
    ("macintosh", "macos"),
    ("cros ", "linux"),  # ChromeOS: "CrOS x86_64"
    ("linux", "linux"),
    ("x11", "linux"),
)

_BOT_MARKERS = ("bot", "crawler", "spider", "curl/", "wget/", "python-requests", "httpx")


def classify_user_agent(user_agent: str | None) -> tuple[str, str]:
    """Return (device, platform) for a raw User-Agent string.

    device:   "web" | "mobile" | "tablet" | "bot" | "unknown"
    platform: "windows" | "macos" | "linux" | "ios" | "android" | "unknown"
    """
    ua = (user_agent or "").lower()
    if not ua:
        return "unknown", "unknown"

    platform = "unknown"
    for marker, name in _PLATFORM_MARKERS:
        if marker in ua:
            platform = name
            break

    if any(marker in ua for marker in _BOT_MARKERS):
        device = "bot"
    elif "ipad" in ua or "tablet" in ua or (platform == "android" and "mobile" not in ua):
        device = "tablet"
    elif "mobile" in ua or platform in ("ios", "android"):
        device = "mobile"
    elif platform != "unknown":
        device = "web"
    else:
        device = "unknown"
    return device, platform
