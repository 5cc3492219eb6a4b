"""Readiness polling for sockets and pipes, level or edge triggered.

Descriptors are registered through their ``SockFd``: ``fdt.op`` always holds
the events the descriptor is currently registered for. Registration may be
changed from other threads while a thread is waiting.
"""

import errno
import select
import socket
import threading
from typing import Any, NamedTuple

from sclib.sock import Event

MAX_EVENTS = 1024

_ALL = Event.READ | Event.WRITE


class PollError(OSError):
    """A poll operation failed."""


class PollEvent(NamedTuple):
    """Events reported for one descriptor and the data it was added with."""

    events: Event
    data: Any


def _error(context, exc):
    if isinstance(exc, OSError) and exc.errno is not None:
        return PollError(exc.errno, f"{context} : {exc.strerror or exc} ")
    return PollError(errno.EBADF, f"{context} : {exc} ")


class _EpollBackend:
    update_context = "epoll_ctl"
    wait_context = "epoll_wait"

    def __init__(self):
        self._ep = select.epoll()
        self._base = select.EPOLLERR | select.EPOLLHUP | getattr(select, "EPOLLRDHUP", 0)

    def update(self, fd, old, new, adding):
        if new == Event.NONE:
            self._ep.unregister(fd)
            return

        mask = self._base
        if new & Event.READ:
            mask |= select.EPOLLIN
        if new & Event.WRITE:
            mask |= select.EPOLLOUT
        if new & Event.EDGE:
            mask |= select.EPOLLET

        if old == Event.NONE:
            self._ep.register(fd, mask)
        else:
            self._ep.modify(fd, mask)

    def wait(self, timeout):
        seconds = -1 if timeout < 0 else timeout / 1000
        ready = []
        for fd, flags in self._ep.poll(seconds, MAX_EVENTS):
            events = Event.NONE
            if flags & select.EPOLLIN:
                events |= Event.READ
            if flags & select.EPOLLOUT:
                events |= Event.WRITE
            if flags & self._base:
                events = _ALL
            ready.append((fd, events))
        return ready

    def close(self):
        self._ep.close()


class _KqueueBackend:
    update_context = "kevent"
    wait_context = "kevent"

    def __init__(self):
        self._kq = select.kqueue()

    def update(self, fd, old, new, adding):
        changes = []
        filters = ((Event.WRITE, select.KQ_FILTER_WRITE), (Event.READ, select.KQ_FILTER_READ))

        if adding:
            flags = select.KQ_EV_ADD
            if new & Event.EDGE:
                flags |= select.KQ_EV_CLEAR
            for bit, filt in filters:
                if new & bit:
                    changes.append(select.kevent(fd, filt, flags))
        else:
            removed = old & ~new
            for bit, filt in reversed(filters):
                if removed & bit:
                    changes.append(select.kevent(fd, filt, select.KQ_EV_DELETE))
                elif removed & Event.EDGE and old & bit:
                    changes.append(select.kevent(fd, filt, select.KQ_EV_ADD))

        if changes:
            self._kq.control(changes, 0, 0)

    def wait(self, timeout):
        seconds = None if timeout < 0 else timeout / 1000
        ready = []
        for kev in self._kq.control(None, MAX_EVENTS, seconds):
            if kev.flags & select.KQ_EV_EOF:
                events = _ALL
            elif kev.filter == select.KQ_FILTER_READ:
                events = Event.READ
            elif kev.filter == select.KQ_FILTER_WRITE:
                events = Event.WRITE
            else:
                events = Event.NONE
            ready.append((kev.ident, events))
        return ready

    def close(self):
        self._kq.close()


class _SelectBackend:
    """Portable fallback; edge-triggered registrations behave as level-triggered."""

    update_context = "poll"
    wait_context = "select"

    def __init__(self):
        self._masks = {}
        self._wake_r, self._wake_w = socket.socketpair()
        self._wake_r.setblocking(False)
        self._wake_w.setblocking(False)

    def update(self, fd, old, new, adding):
        if fd < 0:
            raise OSError(errno.EBADF, "invalid file descriptor")
        if old != Event.NONE and fd not in self._masks:
            raise OSError(errno.ENOENT, "descriptor is not registered")

        if new == Event.NONE:
            self._masks.pop(fd, None)
        else:
            self._masks[fd] = new

        # Wake a waiting thread so it picks up the new registration.
        try:
            self._wake_w.send(b"W")
        except OSError:
            pass

    def _drain(self):
        while True:
            try:
                if not self._wake_r.recv(16):
                    return
            except OSError:
                return

    def wait(self, timeout):
        snapshot = dict(self._masks)
        wake = self._wake_r.fileno()
        readers = [fd for fd, mask in snapshot.items() if mask & Event.READ]
        writers = [fd for fd, mask in snapshot.items() if mask & Event.WRITE]
        seconds = None if timeout < 0 else timeout / 1000

        readable, writable, broken = select.select(
            readers + [wake], writers, readers + writers, seconds
        )

        found = {}
        for fd in readable:
            if fd == wake:
                self._drain()
            else:
                found[fd] = found.get(fd, Event.NONE) | Event.READ
        for fd in writable:
            found[fd] = found.get(fd, Event.NONE) | Event.WRITE
        for fd in broken:
            found[fd] = _ALL

        return list(found.items())[:MAX_EVENTS]

    def close(self):
        self._wake_r.close()
        self._wake_w.close()


def _create_backend():
    if hasattr(select, "epoll"):
        return _EpollBackend()
    if hasattr(select, "kqueue"):
        return _KqueueBackend()
    return _SelectBackend()


class Poll:
    """Waits for readiness events on registered descriptors."""

    def __init__(self):
        self._lock = threading.Lock()
        self._data = {}
        try:
            self._backend = _create_backend()
        except OSError as exc:
            raise _error("poll init", exc) from exc

    def __repr__(self):
        state = "closed" if self._backend is None else f"{len(self._data)} registered"
        return f"Poll({state})"

    def _require(self):
        backend = self._backend
        if backend is None:
            raise PollError(errno.EBADF, "poll : poll is not initialized or already terminated")
        return backend

    def _apply(self, fdt, new, data, adding):
        backend = self._require()
        old = Event(fdt.op)
        if new == Event.EDGE:
            new = Event.NONE
        if old == new:
            return

        with self._lock:
            # fdt and the data map are updated before the kernel call so a
            # concurrent waiter never sees a half-updated registration.
            fdt.op = new
            if new != Event.NONE:
                self._data[fdt.fd] = data
            try:
                backend.update(fdt.fd, old, new, adding)
            except (OSError, ValueError, OverflowError, TypeError) as exc:
                fdt.op = old
                if old == Event.NONE:
                    self._data.pop(fdt.fd, None)
                raise _error(backend.update_context, exc) from exc
            if new == Event.NONE:
                self._data.pop(fdt.fd, None)

    def add(self, fdt, events, data=None):
        """Watch ``fdt`` for ``events`` in addition to those already watched.

        Event.EDGE switches the registration to edge-triggered mode.
        """
        self._apply(fdt, Event(int(fdt.op) | int(events)), data, adding=True)

    def remove(self, fdt, events, data=None):
        """Stop watching ``fdt`` for ``events``; Event.EDGE cancels edge mode.

        When no read or write events remain the descriptor is dropped
        entirely.
        """
        self._apply(fdt, Event(int(fdt.op) & ~int(events)), data, adding=False)

    def wait(self, timeout=-1):
        """Wait up to ``timeout`` milliseconds (-1 for ever) and return the events.

        A closed descriptor is reported with both READ and WRITE set.
        """
        backend = self._require()
        try:
            ready = backend.wait(timeout)
        except (OSError, ValueError) as exc:
            raise _error(backend.wait_context, exc) from exc
        return [PollEvent(events, self._data.get(fd)) for fd, events in ready]

    def close(self):
        """Release the poller; closing twice is harmless."""
        backend, self._backend = self._backend, None
        if backend is None:
            return
        self._data.clear()
        try:
            backend.close()
        except OSError as exc:
            raise _error("poll close", exc) from exc

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()