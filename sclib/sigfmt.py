"""Minimal printf-style formatting and logging usable from signal handlers.

Supports only %s, %d, %ld, %lld, %u, %lu, %llu, %p and %%.
"""

import os
import re

LOG_BUFFER_SIZE = 4096

_PIECE = re.compile(r"(?P<text>[^%]+)|%(?P<length>ll|l)?(?P<conv>.?)", re.DOTALL)
_MASK64 = (1 << 64) - 1


def _next_arg(values, spec):
    try:
        return next(values)
    except StopIteration:
        raise TypeError(f"not enough arguments for %{spec}") from None


def _integer(value, bits, signed):
    value = int(value) & ((1 << bits) - 1)
    if signed and value >= 1 << (bits - 1):
        value -= 1 << bits
    return str(value)


def _convert(length, conv, values):
    spec = f"{length or ''}{conv}"

    if not length:
        if conv == "%":
            return "%"
        if conv == "s":
            value = _next_arg(values, spec)
            return "(null)" if value is None else str(value)
        if conv == "p":
            value = _next_arg(values, spec)
            return f"0x{(0 if value is None else int(value)) & _MASK64:x}"

    if conv in ("d", "u"):
        bits = 64 if length else 32
        return _integer(_next_arg(values, spec), bits, conv == "d")

    raise ValueError(f"unsupported conversion: %{spec}")


def snprintf(fmt, *args, size=None):
    """Format ``fmt`` with ``args``.

    When ``size`` is given the result is cut to ``size - 1`` characters, as
    if written into a buffer of that size. Raises ValueError for an
    unsupported conversion.
    """
    if size is not None and size < 0:
        raise ValueError(f"size must not be negative: {size}")

    values = iter(args)
    pieces = []
    for match in _PIECE.finditer(fmt):
        text = match.group("text")
        if text is not None:
            pieces.append(text)
        else:
            pieces.append(_convert(match.group("length"), match.group("conv"), values))

    out = "".join(pieces)
    if size is None:
        return out
    return out[: max(size - 1, 0)]


def log(fd, fmt, *args):
    """Format a message and write it to file descriptor ``fd``.

    Returns the number of bytes written; write failures are ignored and
    reported as 0.
    """
    text = snprintf(fmt, *args, size=LOG_BUFFER_SIZE)
    try:
        return os.write(fd, text.encode("utf-8", "replace"))
    except OSError:
        return 0