"""A unidirectional pipe whose read end can be watched by a poller."""

import errno
import os

from sclib.sock import Event, SockFd


class PipeError(OSError):
    """A pipe operation failed."""


def _error(context, exc):
    code = exc.errno if exc.errno is not None else errno.EIO
    return PipeError(code, f"{context} : {exc.strerror or exc} ")


class Pipe:
    """An OS pipe: bytes written to it are read back from its read end.

    ``fdt`` describes the read end so the pipe can be registered with a
    poller; ``type`` is user data stored in it.
    """

    def __init__(self, type=0):
        self.fds = (-1, -1)
        self.fdt = SockFd(type=type)
        try:
            read_fd, write_fd = os.pipe()
        except OSError as exc:
            raise _error("pipe()", exc) from exc

        self.fds = (read_fd, write_fd)
        self.fdt.fd = read_fd
        self.fdt.op = Event.NONE

    def __repr__(self):
        return f"Pipe(read_fd={self.fds[0]}, write_fd={self.fds[1]})"

    def _check_open(self):
        if self.fds[0] == -1:
            raise PipeError(errno.EBADF, "pipe is closed")

    def write(self, data):
        """Write ``data`` to the pipe and return the number of bytes written."""
        self._check_open()
        try:
            return os.write(self.fds[1], data)
        except OSError as exc:
            raise _error("pipe write()", exc) from exc

    def read(self, size):
        """Read up to ``size`` bytes; returns b"" once the write end is closed."""
        self._check_open()
        try:
            return os.read(self.fds[0], size)
        except OSError as exc:
            raise _error("pipe read()", exc) from exc

    def close(self):
        """Close both ends; closing an already closed pipe does nothing.

        Both ends are released even when closing one of them fails; the
        failure is then raised as PipeError.
        """
        read_fd, write_fd = self.fds
        if read_fd == -1:
            return

        self.fds = (-1, -1)
        self.fdt.fd = -1

        failure = None
        for fd in (read_fd, write_fd):
            try:
                os.close(fd)
            except OSError as exc:
                failure = exc

        if failure is not None:
            raise _error("pipe close()", failure) from failure

    def fileno(self):
        """Return the read end's descriptor, or -1 when closed."""
        return self.fds[0]

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()