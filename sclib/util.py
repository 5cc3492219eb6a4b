"""Small helpers: RC4 pseudo random bytes, powers of two and size strings."""

import re

_UINT64_MAX = (1 << 64) - 1
_INT64_MAX = (1 << 63) - 1
_INT64_MIN = -(1 << 63)

SEED_SIZE = 256

_SIZE_SUFFIXES = ("KB", "MB", "GB", "TB", "PB", "EB")
# Just below 1024 PB; shifted right by 10-bit steps it gives the point where
# the next larger unit is used.
_SIZE_THRESHOLD = 0xFFFCCCCCCCCCCCC

_UNITS = {
    "b": 1,
    "k": 1 << 10,
    "m": 1 << 20,
    "g": 1 << 30,
    "t": 1 << 40,
    "p": 1 << 50,
    "e": 1 << 60,
}

_NUMBER = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)(.*)\Z", re.DOTALL)


class Rand:
    """Pseudo random byte generator built on RC4."""

    def __init__(self, seed):
        seed = bytes(seed)
        if len(seed) != SEED_SIZE:
            raise ValueError(f"seed must be {SEED_SIZE} bytes, got {len(seed)}")

        state = bytearray(seed)
        j = 0
        for i, key in enumerate(seed):
            j = (j + state[i] + key) & 0xFF
            state[i], state[j] = state[j], state[i]

        self._state = state
        self._i = 0
        self._j = j

    def read(self, size):
        """Return the next ``size`` random bytes; empty for a size of zero or less."""
        if size <= 0:
            return b""

        state = self._state
        i, j = self._i, self._j
        out = bytearray()

        for _ in range(size):
            i = (i + 1) & 0xFF
            t = state[i]
            j = (j + t) & 0xFF
            state[i] = state[j]
            state[j] = t
            out.append(state[(t + state[i]) & 0xFF])

        self._i, self._j = i, j
        return bytes(out)


def is_pow2(num):
    """Return True if ``num`` is a power of two."""
    return num != 0 and (num & (num - 1)) == 0


def to_pow2(size):
    """Return the smallest power of two not below ``size`` (64-bit wrapping)."""
    if size < 0 or size > _UINT64_MAX:
        raise ValueError(f"size out of 64-bit unsigned range: {size}")
    if size == 0:
        return 1
    return (1 << (size - 1).bit_length()) & _UINT64_MAX


def bytes_to_size(val):
    """Format a byte count in human readable form, e.g. 1024 -> '1.00 KB'."""
    if val < 0 or val > _UINT64_MAX:
        raise ValueError(f"value out of 64-bit unsigned range: {val}")

    if val < 1024:
        return f"{val} B"

    count = val
    n = 0
    for shift in (40, 30, 20, 10, 0):
        if val <= _SIZE_THRESHOLD >> shift:
            break
        n += 1
        count >>= 10

    return f"{count / 1024:.2f} {_SIZE_SUFFIXES[n]}"


def size_to_bytes(text):
    """Parse a size such as '10', '4k' or '2MB' into bytes.

    Raises ValueError for malformed input or values that do not fit in a
    signed 64-bit integer.
    """
    match = _NUMBER.match(text)
    if match is None:
        raise ValueError(f"invalid size: {text!r}")

    val = int(match.group(1))
    suffix = match.group(2)

    if not _INT64_MIN <= val <= _INT64_MAX:
        raise ValueError(f"size out of range: {text!r}")

    if not suffix:
        return val

    if len(suffix) > 2 or (len(suffix) == 2 and suffix[1].lower() != "b"):
        raise ValueError(f"invalid size suffix: {text!r}")

    unit = _UNITS.get(suffix[0].lower())
    if unit is None:
        raise ValueError(f"invalid size unit: {text!r}")

    if val > _INT64_MAX // unit:
        raise ValueError(f"size out of range: {text!r}")

    result = val * unit
    if result < _INT64_MIN:
        raise ValueError(f"size out of range: {text!r}")

    return result