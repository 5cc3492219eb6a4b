# sclib

A small library of systems helpers for POSIX programs. Errors are raised as
exceptions rather than returned as status codes.

## Modules

### `sclib.util`

- `Rand(seed)`: an RC4-based pseudo random byte generator. The seed must be
  exactly 256 bytes, otherwise `ValueError` is raised. `Rand.read(size)`
  returns the next `size` bytes, or `b""` for a size of zero or less. Two
  generators with the same seed produce the same bytes.
- `is_pow2(num)`: `True` if `num` is a power of two (`0` is not).
- `to_pow2(size)`: the smallest power of two not below `size`; `to_pow2(0)` is
  `1`. Values outside the unsigned 64-bit range raise `ValueError`.
- `bytes_to_size(val)`: a byte count in human-readable form, e.g. `313` ->
  `"313 B"`, `2048` -> `"2.00 KB"`, up to `EB`.
- `size_to_bytes(text)`: parses `"313"`, `"1k"`, `"1kb"`, `"2MB"` and so on
  (units `b k m g t p e`, optional trailing `b`, any case). Malformed input or
  a result that does not fit in a signed 64-bit integer raises `ValueError`.

```python
from sclib.util import Rand, bytes_to_size, size_to_bytes, to_pow2

size_to_bytes("1kb")        # 1024
bytes_to_size(2 * 1024)     # "2.00 KB"
to_pow2(1023)               # 1024

rnd = Rand(bytes(256))
chunk = rnd.read(16)
```

### `sclib.sigfmt`

- `snprintf(fmt, *args, size=None)`: a minimal formatter accepting only `%s`,
  `%d`, `%u`, `%ld`, `%lu`, `%lld`, `%llu`, `%p` and `%%`. `%s` of `None`
  gives `"(null)"`; `%p` prints hexadecimal with a `0x` prefix. With `size`
  the result is cut to `size - 1` characters. An unsupported conversion raises
  `ValueError`; too few arguments raise `TypeError`.
- `log(fd, fmt, *args)`: formats (cut to `LOG_BUFFER_SIZE`, 4096) and writes
  straight to file descriptor `fd`, returning the bytes written, or `0` if
  the write failed.

```python
from sclib.sigfmt import snprintf

snprintf("%s:%d", "port", 8080)    # "port:8080"
snprintf("%s", "test", size=0)     # ""
```

### `sclib.signals`

- `SignalHandler(shutdown_fd=-1, log_fd=-1)`. `install()` ignores SIGHUP and
  SIGPIPE, routes SIGINT/SIGTERM to `on_shutdown` and SIGABRT, SIGSEGV,
  SIGBUS, SIGFPE and SIGILL to `on_fatal`, and raises `OSError` if any handler
  could not be set.
  - On the first shutdown signal, one byte is written to `shutdown_fd` so an
    event loop watching it can stop cleanly. With `shutdown_fd` of `-1`, or if
    that write fails, the process exits at once. A second shutdown signal
    forces an immediate exit.
  - A fatal signal logs a crash report with the current Python stack, restores
    the default action and raises the signal again.
  - Messages go to `log_fd`, or to stdout (shutdown) / stderr (crash) when it
    is `-1`.
- `signal_name(signum)`: the name of a shutdown or fatal signal, else `None`.
- `init()`: installs a `SignalHandler` with no shutdown or log descriptor and
  returns it.

### `sclib.sock`

- `Event`: flags `NONE`, `READ`, `WRITE`, `EDGE`.
- `Family`: `INET`, `INET6`, `UNIX`.
- `SockFd`: the descriptor (`fd`), the events it is registered for (`op`) and
  a user value (`type`).
- `Sock(type=0, blocking=True, family=Family.INET)`: a stream socket with
  `listen(host, port=None)` (a path for Unix sockets), `accept()` returning a
  new `Sock`, `connect(dst_addr, dst_port=None, src_addr=None, src_port=None)`,
  `finish_connect()`, `send(data, flags=0)`, `recv(size, flags=0)`,
  `set_blocking()`, `set_rcvtimeo(ms)`, `set_sndtimeo(ms)`, `local_str()`,
  `remote_str()`, `describe()`, `fileno()` and `close()`. It is a context
  manager.
  - Failures raise `SockError` (an `OSError`).
  - On a non-blocking socket, `accept`, `connect` (still in progress), `send`
    and `recv` raise `BlockingIOError` when they would block; call
    `finish_connect()` once the socket is writable.
  - `recv` raises `EOFError` when the peer has closed the connection.
  - `describe()` returns e.g. `"Local(127.0.0.1:8004), Remote() "`.
- `notify_systemd(msg)`: sends `msg` as a datagram to the socket named by
  `NOTIFY_SOCKET` (a leading `@` means the abstract namespace); raises
  `SockError` if the variable is missing or invalid or sending fails.

```python
from sclib.sock import Family, Sock

with Sock(0, True, Family.INET) as server:
    server.listen("127.0.0.1", "8004")
    print(server.describe())
```

### `sclib.pipe`

- `Pipe(type=0)`: an OS pipe with `write(data)`, `read(size)`, `fileno()` (the
  read end) and `close()`; a context manager. Its `fdt` describes the read end
  so it can be registered with a `Poll`. Failures raise `PipeError`; closing
  twice does nothing.

### `sclib.poll`

- `Poll()`: waits for readiness using epoll, kqueue, or `select` where
  neither exists (there, edge-triggered registrations behave as
  level-triggered). `add(fdt, events, data=None)` and
  `remove(fdt, events, data=None)` change what a `SockFd` is registered for
  and keep `fdt.op` up to date; `Event.EDGE` switches edge-triggered mode on
  or off, and a descriptor left with no read or write events is dropped.
  Registrations may be changed from other threads while one waits.
  `wait(timeout=-1)` (milliseconds, `-1` for ever) returns a list of
  `PollEvent(events, data)`, at most `MAX_EVENTS`; a closed descriptor is
  reported as `READ | WRITE`. Failures raise `PollError`.

```python
from sclib.pipe import Pipe
from sclib.poll import Poll
from sclib.sock import Event

with Poll() as poll, Pipe(0) as pipe:
    poll.add(pipe.fdt, Event.READ, pipe)
    pipe.write(b"x")
    for event in poll.wait(100):
        print(event.events, event.data)
```

## What it does not do

This is a library only: it has no command-line program and runs no server of
its own. It offers no Windows-specific console or exception handling.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```