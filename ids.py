"""Record identifiers: prefix + base36(epoch millis) + 5 random base36 chars."""

import random
import time
from datetime import datetime, timezone
from typing import Callable, Optional

BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
RANDOM_CHARS = 5

_rng = random.SystemRandom()


def now_ms() -> int:
    return int(time.time() * 1000)


def iso_utc(moment: Optional[datetime] = None) -> str:
    """ISO-8601 in UTC with milliseconds and a Z suffix, e.g. 2024-03-05T14:07:30.000Z"""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


def random_base36(length: int, rng: Optional[random.Random] = None) -> str:
    rng = rng or _rng
    return "".join(rng.choice(BASE36) for _ in range(length))


def make_id(
    prefix: str,
    clock: Callable[[], int] = now_ms,
    rng: Optional[random.Random] = None,
) -> str:
    # No lookup against the store: two calls in the same millisecond collide
    # only if they also draw the same random suffix.
    return (prefix + to_base36(clock()) + random_base36(RANDOM_CHARS, rng)).upper()
