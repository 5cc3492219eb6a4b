"""Systems helpers: random bytes, sizes, signal-safe formatting, signal handling, sockets, pipes and polling."""

__version__ = "2.0.0"

__all__ = ["util", "sigfmt", "signals", "sock", "pipe", "poll"]