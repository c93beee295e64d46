"""
License key generation.

Format: ``LIC-<decimal millisecond timestamp>-<9 uppercase alphanumerics>``.
Keys are generated here, never supplied by callers.
"""

import re
import secrets
import string
from datetime import datetime

from adminops.models.domain import utc_now

LICENSE_KEY_PREFIX = "LIC"
LICENSE_KEY_SUFFIX_LENGTH = 9
LICENSE_KEY_ALPHABET = string.ascii_uppercase + string.digits
LICENSE_KEY_PATTERN = re.compile(r"^LIC-\d+-[A-Z0-9]{9}$")


def generate_license_key(now: datetime | None = None) -> str:
    """Build a fresh key from the current time and a random suffix."""
    moment = now or utc_now()
    millis = int(moment.timestamp() * 1000)
    suffix = "".join(
        secrets.choice(LICENSE_KEY_ALPHABET) for _ in range(LICENSE_KEY_SUFFIX_LENGTH)
    )
    return f"{LICENSE_KEY_PREFIX}-{millis}-{suffix}"


def is_license_key(value: str) -> bool:
    """Check a string against the license key format."""
    return bool(LICENSE_KEY_PATTERN.match(value))
