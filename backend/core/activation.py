"""Activation code format.

Codes look like ``PREFIX-SEGMENT-AAAA-BBBB-30``: a fixed prefix and
segment, two 4-character uppercase alphanumeric groups and a literal tag
giving the grant length in days.
"""

import random
import re
from functools import lru_cache

from core.errors import ValidationError

DEFAULT_PREFIX = "VERTX"
DEFAULT_SEGMENT = "TRAD"
DEFAULT_DAYS_TAG = "30"


@lru_cache(maxsize=16)
def code_pattern(
    prefix: str = DEFAULT_PREFIX,
    segment: str = DEFAULT_SEGMENT,
    days_tag: str = DEFAULT_DAYS_TAG,
) -> re.Pattern:
    return re.compile(
        rf"^{re.escape(prefix)}-{re.escape(segment)}-[A-Z0-9]{{4}}-[A-Z0-9]{{4}}-{re.escape(days_tag)}$"
    )


def is_valid_code(
    code: str,
    prefix: str = DEFAULT_PREFIX,
    segment: str = DEFAULT_SEGMENT,
    days_tag: str = DEFAULT_DAYS_TAG,
) -> bool:
    return bool(code_pattern(prefix, segment, days_tag).match(code))


def validate_code(
    code: str,
    prefix: str = DEFAULT_PREFIX,
    segment: str = DEFAULT_SEGMENT,
    days_tag: str = DEFAULT_DAYS_TAG,
) -> str:
    """Return the normalised code or raise ``ValidationError``.

    Surrounding whitespace is stripped; case is significant.
    """
    candidate = (code or "").strip()
    if not is_valid_code(candidate, prefix, segment, days_tag):
        raise ValidationError(
            f"Invalid code format. Codes follow the pattern "
            f"{prefix}-{segment}-XXXX-XXXX-{days_tag}."
        )
    return candidate


_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def generate_code(
    rng: random.Random | None = None,
    prefix: str = DEFAULT_PREFIX,
    segment: str = DEFAULT_SEGMENT,
    days_tag: str = DEFAULT_DAYS_TAG,
) -> str:
    """Issue a new code in the accepted format."""
    rng = rng or random.SystemRandom()
    groups = ["".join(rng.choice(_ALPHABET) for _ in range(4)) for _ in range(2)]
    return f"{prefix}-{segment}-{groups[0]}-{groups[1]}-{days_tag}"
