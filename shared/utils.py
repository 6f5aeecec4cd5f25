"""
Helpers for the device IDs that heartbeat and clip topics are keyed by.
Users usually paste either the bare ID or their share link, so the CLI
runs input through extract_device_id before validating it.
"""
from __future__ import annotations
import re
from typing import Optional

# ========================================
#           DEVICE ID HELPERS
# ========================================

# Fixed test device that the server accepts regardless of the usual rules
INTERNAL_TESTING_DEVICE = "internal-testing"

_DEVICE_ID_RE = re.compile(r'^[A-Za-z0-9]{3,8}$')
_SHARE_LINK_RE = re.compile(
    r'((https?://)?app\.hyperate\.io/)?(?P<device_id>[a-zA-Z0-9\-]+)/?(\?.*)?'
)


def is_valid_device_id(s: str) -> bool:
    """
    returns True for IDs of 3 to 8 ASCII letters/digits, or the internal testing ID.
    """
    if s.lower() == INTERNAL_TESTING_DEVICE:
        return True
    return bool(_DEVICE_ID_RE.fullmatch(s))


def extract_device_id(s: str) -> Optional[str]:
    """
    Pull the device ID out of a bare ID or a share link.

    - "abc123"                               -> "abc123"
    - "https://app.hyperate.io/abc123?x=1"   -> "abc123"
    - "app.hyperate.io/abc123"               -> "abc123"

    Returns None when the input is neither an ID nor an app.hyperate.io link.
    """
    # anchored at both ends; other hosts must not yield an ID
    match = _SHARE_LINK_RE.fullmatch(s.strip())
    if match is None:
        return None
    return match.group("device_id")


def strip_topic_prefix(topic: str, prefix: str) -> str:
    """Drop the fixed channel prefix ("hr:", "clips:") from a topic."""
    return topic[len(prefix):]
