"""TCP and Unix domain stream sockets in blocking or non-blocking mode."""

import enum
import errno
import os
import socket
import struct
import sys
from dataclasses import dataclass

LISTEN_BACKLOG = 4096

_AF_UNIX = getattr(socket, "AF_UNIX", 1)
_UNIX_PATH_MAX = 104 if sys.platform == "darwin" or "bsd" in sys.platform else 108

_IN_PROGRESS = {
    code
    for code in (
        errno.EINPROGRESS,
        errno.EAGAIN,
        errno.EWOULDBLOCK,
        getattr(errno, "WSAEWOULDBLOCK", None),
        getattr(errno, "WSAEINPROGRESS", None),
    )
    if code is not None
}


class Event(enum.IntFlag):
    """Readiness events a descriptor can be watched for."""

    NONE = 0
    READ = 1
    WRITE = 2
    EDGE = 4


class Family(enum.IntEnum):
    """Address families supported by Sock."""

    INET = socket.AF_INET
    INET6 = socket.AF_INET6
    UNIX = _AF_UNIX


class SockError(OSError):
    """A socket operation failed."""


@dataclass(eq=False)
class SockFd:
    """A descriptor with the events it is registered for and user data."""

    fd: int = -1
    op: Event = Event.NONE
    type: int = 0


def _wrap(exc):
    if isinstance(exc, OSError) and exc.errno is not None:
        return SockError(exc.errno, exc.strerror or str(exc))
    return SockError(errno.EINVAL, str(exc))


def _timeval(ms):
    if sys.platform == "win32":
        return struct.pack("<I", ms)
    return struct.pack("@ll", ms // 1000, (ms % 1000) * 1000)


def _format_address(family, addr):
    if family in (socket.AF_INET, socket.AF_INET6):
        return f"{addr[0]}:{addr[1]}"
    if family == _AF_UNIX:
        if isinstance(addr, bytes):
            return addr.decode("utf-8", "replace")
        return addr or ""
    return ""


def _would_block(message):
    return BlockingIOError(errno.EAGAIN, message)


class Sock:
    """A stream socket bound to one address family."""

    def __init__(self, type=0, blocking=True, family=Family.INET):
        self.fdt = SockFd(type=type)
        self.blocking = blocking
        self.family = Family(family)
        self._sock = None

    def __repr__(self):
        return f"Sock(fd={self.fdt.fd}, family={self.family.name}, blocking={self.blocking})"

    def _attach(self, sock):
        self._sock = sock
        self.fdt.fd = sock.fileno()

    def _discard(self):
        sock, self._sock = self._sock, None
        self.fdt.fd = -1
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass

    def _require(self):
        if self._sock is None:
            raise SockError(errno.EBADF, os.strerror(errno.EBADF))
        return self._sock

    def _new_unix(self):
        try:
            sock = socket.socket(_AF_UNIX, socket.SOCK_STREAM)
        except OSError as exc:
            raise _wrap(exc) from exc
        self._attach(sock)
        return sock

    def _bind_unix(self, host):
        sock = self._new_unix()
        try:
            os.unlink(host)
        except OSError:
            pass
        try:
            sock.setblocking(self.blocking)
            sock.bind(host)
        except (OSError, ValueError, TypeError) as exc:
            self._discard()
            raise _wrap(exc) from exc

    def _bind(self, host, port):
        try:
            infos = socket.getaddrinfo(host, port, self.family, socket.SOCK_STREAM)
        except (OSError, UnicodeError) as exc:
            raise _wrap(exc) from exc

        for fam, stype, proto, _, addr in infos:
            try:
                sock = socket.socket(fam, stype, proto)
            except OSError:
                continue
            self._attach(sock)
            try:
                if self.family == Family.INET6:
                    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
                sock.setblocking(self.blocking)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                sock.bind(addr)
            except OSError as exc:
                self._discard()
                raise _wrap(exc) from exc
            return

        raise SockError(errno.EADDRNOTAVAIL, os.strerror(errno.EADDRNOTAVAIL))

    def listen(self, host, port=None):
        """Bind to ``host``/``port`` (or a Unix path) and start listening."""
        self._discard()
        if self.family == Family.UNIX:
            self._bind_unix(host)
        else:
            self._bind(host, port)

        try:
            self._sock.listen(LISTEN_BACKLOG)
        except OSError as exc:
            self._discard()
            raise _wrap(exc) from exc

    def accept(self):
        """Accept a pending connection and return it as a new Sock.

        Raises BlockingIOError on a non-blocking socket with nothing pending.
        """
        listener = self._require()
        try:
            conn, _ = listener.accept()
        except BlockingIOError as exc:
            if not self.blocking:
                raise _would_block("no pending connection") from None
            raise _wrap(exc) from exc
        except OSError as exc:
            raise _wrap(exc) from exc

        accepted = Sock(self.fdt.type, self.blocking, self.family)
        accepted._attach(conn)
        try:
            if self.family != Family.UNIX:
                conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            conn.setblocking(self.blocking)
        except OSError as exc:
            accepted._discard()
            raise _wrap(exc) from exc
        return accepted

    def _bind_src(self, src_addr, src_port):
        try:
            infos = socket.getaddrinfo(src_addr, src_port, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except (OSError, UnicodeError) as exc:
            raise _wrap(exc) from exc

        error = None
        for *_, addr in infos:
            try:
                self._sock.bind(addr)
                return
            except (OSError, TypeError, ValueError, OverflowError) as exc:
                error = exc

        if error is None:
            raise SockError(errno.EADDRNOTAVAIL, os.strerror(errno.EADDRNOTAVAIL))
        raise _wrap(error) from error

    def _connect_unix(self, addr):
        sock = self._new_unix()
        if len(os.fsencode(addr)) >= _UNIX_PATH_MAX:
            self._discard()
            raise SockError(errno.EINVAL, "unix socket path too long")
        try:
            sock.setblocking(self.blocking)
            rc = sock.connect_ex(addr)
        except (OSError, ValueError, TypeError) as exc:
            self._discard()
            raise _wrap(exc) from exc
        if rc == 0:
            return
        if not self.blocking and rc in _IN_PROGRESS:
            raise _would_block("connection in progress")
        self._discard()
        raise SockError(rc, os.strerror(rc))

    def connect(self, dst_addr, dst_port=None, src_addr=None, src_port=None):
        """Connect to ``dst_addr``/``dst_port``, optionally from a source address.

        Addresses of the socket's own family are tried first, then the rest.
        A non-blocking socket whose connection is still in progress raises
        BlockingIOError; call finish_connect() once it becomes writable.
        """
        self._discard()
        if self.family == Family.UNIX:
            self._connect_unix(dst_addr)
            return

        try:
            infos = socket.getaddrinfo(dst_addr, dst_port, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except (OSError, UnicodeError) as exc:
            raise _wrap(exc) from exc

        ordered = [i for i in infos if i[0] == self.family]
        ordered += [i for i in infos if i[0] != self.family]

        last_error = None
        for fam, stype, proto, _, addr in ordered:
            try:
                sock = socket.socket(fam, stype, proto)
            except OSError:
                continue

            self.family = Family(fam)
            self._attach(sock)
            try:
                sock.setblocking(self.blocking)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as exc:
                self._discard()
                raise _wrap(exc) from exc

            if src_addr is not None or src_port is not None:
                try:
                    self._bind_src(src_addr, src_port)
                except SockError:
                    self._discard()
                    raise

            rc = sock.connect_ex(addr)
            if rc == 0:
                return
            if not self.blocking and rc in _IN_PROGRESS:
                raise _would_block("connection in progress")

            last_error = rc
            self._discard()

        code = last_error if last_error is not None else errno.EADDRNOTAVAIL
        raise SockError(code, os.strerror(code))

    def set_blocking(self, blocking):
        """Switch the open descriptor between blocking and non-blocking mode."""
        sock = self._require()
        try:
            sock.setblocking(blocking)
        except OSError as exc:
            raise _wrap(exc) from exc

    def _set_timeout(self, option, ms):
        sock = self._require()
        try:
            sock.setsockopt(socket.SOL_SOCKET, option, _timeval(ms))
        except OSError as exc:
            raise _wrap(exc) from exc

    def set_rcvtimeo(self, ms):
        """Set the receive timeout in milliseconds."""
        self._set_timeout(socket.SO_RCVTIMEO, ms)

    def set_sndtimeo(self, ms):
        """Set the send timeout in milliseconds."""
        self._set_timeout(socket.SO_SNDTIMEO, ms)

    def finish_connect(self):
        """Complete a non-blocking connect; raises SockError if it failed."""
        sock = self._require()
        try:
            err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as exc:
            raise _wrap(exc) from exc
        if err != 0:
            raise SockError(err, os.strerror(err))

    def send(self, data, flags=0):
        """Send ``data`` and return the number of bytes sent.

        Raises BlockingIOError when the send would block.
        """
        if not data:
            return 0
        sock = self._require()
        try:
            return sock.send(data, flags)
        except BlockingIOError:
            raise _would_block("send would block") from None
        except OSError as exc:
            raise _wrap(exc) from exc

    def recv(self, size, flags=0):
        """Receive up to ``size`` bytes.

        Raises EOFError when the peer has closed the connection and
        BlockingIOError when no data is available yet.
        """
        if size <= 0:
            return b""
        sock = self._require()
        try:
            data = sock.recv(size, flags)
        except BlockingIOError:
            raise _would_block("recv would block") from None
        except OSError as exc:
            raise _wrap(exc) from exc
        if not data:
            raise EOFError("connection closed by peer")
        return data

    def close(self):
        """Close the descriptor; closing twice is harmless."""
        sock, self._sock = self._sock, None
        self.fdt.fd = -1
        if sock is not None:
            try:
                sock.close()
            except OSError as exc:
                raise _wrap(exc) from exc

    def fileno(self):
        """Return the descriptor, or -1 when closed."""
        return self.fdt.fd

    def local_str(self):
        """Return the local address as 'host:port' or a Unix path."""
        sock = self._require()
        try:
            addr = sock.getsockname()
        except OSError as exc:
            raise _wrap(exc) from exc
        return _format_address(sock.family, addr)

    def remote_str(self):
        """Return the peer address as 'host:port' or a Unix path."""
        sock = self._require()
        try:
            addr = sock.getpeername()
        except OSError as exc:
            raise _wrap(exc) from exc
        return _format_address(sock.family, addr)

    def describe(self):
        """Return 'Local(<addr>), Remote(<addr>) ', empty where unknown."""

        def _safe(getter):
            try:
                return getter()
            except SockError:
                return ""

        return f"Local({_safe(self.local_str)}), Remote({_safe(self.remote_str)}) "

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def notify_systemd(msg):
    """Send a notification message to the socket named by NOTIFY_SOCKET."""
    target = os.environ.get("NOTIFY_SOCKET")
    if not target or target[0] not in "@/" or len(target) == 1:
        raise SockError(errno.EINVAL, "NOTIFY_SOCKET is not set or invalid")
    if not hasattr(socket, "AF_UNIX"):
        raise SockError(errno.EINVAL, "unix sockets are not supported on this platform")

    address = "\0" + target[1:] if target[0] == "@" else target
    payload = msg.encode("utf-8") if isinstance(msg, str) else bytes(msg)
    flags = getattr(socket, "MSG_NOSIGNAL", 0)

    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sock:
            sock.sendto(payload, flags, address)
    except (OSError, ValueError) as exc:
        raise _wrap(exc) from exc