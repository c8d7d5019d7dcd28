"""Case ID generation utility - format: OT<YYYY><MM><NNNN>."""
import random
import re
from datetime import datetime
from typing import Optional

from app.utils.clock import utcnow

CASE_ID_PREFIX = "OT"
CASE_ID_PATTERN = re.compile(r"^OT\d{10}$")

_system_random = random.SystemRandom()


def generate_case_id(
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Generate a candidate case ID: ``OT`` + year + month + 4-digit random suffix.

    Uniqueness is not guaranteed here; callers insert under the unique
    constraint on ``cases.case_id`` and retry with a fresh candidate.

    Examples:
        - OT2024030042
        - OT2024039917

    Args:
        now: Clock override (defaults to current UTC time)
        rng: Random source override, for deterministic tests

    Returns:
        New case ID string
    """
    now = now or utcnow()
    rng = rng or _system_random
    suffix = rng.randint(0, 9999)
    return f"{CASE_ID_PREFIX}{now.year:04d}{now.month:02d}{suffix:04d}"


def validate_case_id_format(case_id: str) -> bool:
    """Return True when ``case_id`` matches ``OT`` followed by ten digits."""
    return bool(CASE_ID_PATTERN.match(case_id or ""))
