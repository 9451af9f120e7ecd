"""Sortable identifiers for gate runs and security events.

Security events carry ``sec-<ulid>`` ids so that audit logs sort by time
when compared lexically. Run ids (one per CLI invocation) are bare ULIDs.
"""

from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Callable
from typing import Final

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
ULID_RANDOM_BYTES: Final[int] = 10
ULID_MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1
EVENT_ID_PREFIX: Final[str] = "sec"

_RANDOM_BITS: Final[int] = ULID_RANDOM_BYTES * 8
_RANDOM_MASK: Final[int] = (1 << _RANDOM_BITS) - 1
_CHAR_VALUES: Final[dict[str, int]] = {c: i for i, c in enumerate(CROCKFORD_BASE32_ALPHABET)}

RandomSource = Callable[[int], bytes]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _to_base32(value: int) -> str:
    out: list[str] = []
    for _ in range(ULID_LENGTH):
        out.append(CROCKFORD_BASE32_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(out))


def _checked_timestamp(timestamp_ms: int | None) -> int:
    stamp = _now_ms() if timestamp_ms is None else timestamp_ms
    if not isinstance(stamp, int) or isinstance(stamp, bool):
        raise ValueError(f"timestamp_ms must be an int, got {type(stamp).__name__}")
    if stamp < 0 or stamp > ULID_MAX_TIMESTAMP_MS:
        raise ValueError(f"timestamp_ms out of range 0..{ULID_MAX_TIMESTAMP_MS}: {stamp}")
    return stamp


def _checked_entropy(randbytes: RandomSource | None) -> int:
    source = randbytes or secrets.token_bytes
    chunk = bytes(source(ULID_RANDOM_BYTES))
    if len(chunk) != ULID_RANDOM_BYTES:
        raise ValueError(
            f"randbytes must yield exactly {ULID_RANDOM_BYTES} bytes, got {len(chunk)}"
        )
    return int.from_bytes(chunk, "big")


def generate_ulid(
    *,
    timestamp_ms: int | None = None,
    randbytes: RandomSource | None = None,
) -> str:
    """Return a 26 character Crockford Base32 ULID.

    ``timestamp_ms`` and ``randbytes`` exist so tests can pin the output.
    """
    stamp = _checked_timestamp(timestamp_ms)
    return _to_base32((stamp << _RANDOM_BITS) | _checked_entropy(randbytes))


def ulid_value(text: str) -> int:
    """Decode a ULID to its 128-bit integer, raising ``ValueError`` when malformed."""
    if not isinstance(text, str):
        raise ValueError(f"ulid must be a string, got {type(text).__name__}")
    if len(text) != ULID_LENGTH:
        raise ValueError(f"ulid length must be {ULID_LENGTH}, got {len(text)}")
    # The leading character holds only 3 significant bits.
    if _CHAR_VALUES.get(text[0].upper(), 0) > 7:
        raise ValueError("ulid overflow: leading character exceeds 128 bits")
    value = 0
    for position, char in enumerate(text):
        digit = _CHAR_VALUES.get(char.upper())
        if digit is None:
            raise ValueError(f"invalid ULID character {char!r} at position {position}")
        value = value << 5 | digit
    return value


def validate_ulid(text: str) -> None:
    ulid_value(text)


def ulid_timestamp_ms(text: str) -> int:
    """Millisecond timestamp embedded in a ULID."""
    return ulid_value(text) >> _RANDOM_BITS


class MonotonicUlidFactory:
    """ULID source whose output strictly increases, even within one millisecond.

    Events published in a burst share a timestamp; incrementing the random
    part keeps replay order equal to creation order.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], int] = _now_ms,
        randbytes: RandomSource | None = None,
    ) -> None:
        self._clock = clock
        self._randbytes = randbytes
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_random = 0

    def __call__(self) -> str:
        with self._lock:
            stamp = _checked_timestamp(self._clock())
            if stamp <= self._last_ms:
                stamp = self._last_ms
                random_part = self._last_random + 1
                if random_part > _RANDOM_MASK:
                    stamp += 1
                    random_part = _checked_entropy(self._randbytes)
            else:
                random_part = _checked_entropy(self._randbytes)
            self._last_ms = stamp
            self._last_random = random_part
        return _to_base32((_checked_timestamp(stamp) << _RANDOM_BITS) | random_part)


_event_ulids = MonotonicUlidFactory()


def generate_event_id(
    *, timestamp_ms: int | None = None, randbytes: RandomSource | None = None
) -> str:
    """Return a fresh ``sec-<ulid>`` id.

    Without arguments ids come from a process-wide monotonic factory.
    """
    if timestamp_ms is None and randbytes is None:
        ulid = _event_ulids()
    else:
        ulid = generate_ulid(timestamp_ms=timestamp_ms, randbytes=randbytes)
    return f"{EVENT_ID_PREFIX}-{ulid}"


def validate_event_id(event_id: str) -> None:
    if not isinstance(event_id, str):
        raise ValueError(f"event id must be a string, got {type(event_id).__name__}")
    prefix, sep, ulid = event_id.partition("-")
    if prefix != EVENT_ID_PREFIX or not sep:
        raise ValueError(f"expected prefix '{EVENT_ID_PREFIX}-' in event id {event_id!r}")
    try:
        ulid_value(ulid)
    except ValueError as exc:
        raise ValueError(f"invalid ULID part for event id: {exc}") from exc


__all__ = [
    "CROCKFORD_BASE32_ALPHABET",
    "EVENT_ID_PREFIX",
    "MonotonicUlidFactory",
    "ULID_LENGTH",
    "ULID_MAX_TIMESTAMP_MS",
    "generate_event_id",
    "generate_ulid",
    "ulid_timestamp_ms",
    "ulid_value",
    "validate_event_id",
    "validate_ulid",
]
