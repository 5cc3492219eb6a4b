"""Shutdown and crash signal handling.

Shutdown signals (SIGINT, SIGTERM) write one byte to a shutdown descriptor
so an event loop can stop cleanly; a second shutdown signal exits at once.
Fatal signals log a crash report and re-raise with the default action.
"""

import os
import signal
import traceback

from sclib.sigfmt import log

STDOUT_FILENO = 1
STDERR_FILENO = 2

_SHUTDOWN_SIGNALS = ("SIGTERM", "SIGINT")
_IGNORED_SIGNALS = ("SIGHUP", "SIGPIPE")
_FATAL_SIGNALS = ("SIGABRT", "SIGSEGV", "SIGBUS", "SIGFPE", "SIGILL")
_NAMED_SIGNALS = ("SIGINT", "SIGTERM", "SIGSEGV", "SIGABRT", "SIGBUS", "SIGFPE", "SIGILL")


def _lookup(names):
    """Return the signal numbers for the names this platform defines."""
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


def signal_name(signum):
    """Return the name of a shutdown or fatal signal, or None for others."""
    for name in _NAMED_SIGNALS:
        if getattr(signal, name, None) == signum:
            return name
    return None


class SignalHandler:
    """Handles shutdown and fatal signals for a process.

    ``shutdown_fd`` receives one byte on the first shutdown signal; -1 means
    there is no shutdown listener and the process exits at once.
    ``log_fd`` receives log lines; -1 means stdout for shutdown messages and
    stderr for crash reports.
    """

    def __init__(self, shutdown_fd=-1, log_fd=-1):
        self.shutdown_fd = shutdown_fd
        self.log_fd = log_fd
        self.will_shutdown = False

    def install(self):
        """Install the handlers; raises OSError if any could not be set."""
        failed = []

        def _set(signum, handler):
            try:
                signal.signal(signum, handler)
            except (OSError, ValueError, RuntimeError):
                failed.append(signum)

        for signum in _lookup(_IGNORED_SIGNALS):
            _set(signum, signal.SIG_IGN)
        for signum in _lookup(_SHUTDOWN_SIGNALS):
            _set(signum, self.on_shutdown)
        for signum in _lookup(_FATAL_SIGNALS):
            _set(signum, self.on_fatal)

        if failed:
            names = ", ".join(str(int(s)) for s in failed)
            raise OSError(f"failed to install signal handlers for: {names}")
        return self

    def on_shutdown(self, signum, frame):
        """Handle a shutdown signal."""
        fd = self.log_fd if self.log_fd != -1 else STDOUT_FILENO
        name = signal_name(signum)
        if name not in ("SIGINT", "SIGTERM"):
            name = "Shutdown signal"

        log(fd, "Recv : %s, (%d) \n", name, int(signum))

        if self.will_shutdown:
            log(fd, "Forcing shut down! \n")
            os._exit(1)
            return

        self.will_shutdown = True

        if self.shutdown_fd != -1:
            log(fd, "Sending shutdown command. \n")
            try:
                written = os.write(self.shutdown_fd, b"\x01")
            except OSError:
                written = -1
            if written != 1:
                log(fd, "Failed to send shutdown command, shutting down immediately! \n")
                os._exit(1)
                return
        else:
            log(fd, "No shutdown handler, shutting down! \n")
            os._exit(0)
            return

    def on_fatal(self, signum, frame):
        """Log a crash report, restore the default action and re-raise."""
        fd = self.log_fd if self.log_fd != -1 else STDERR_FILENO
        name = signal_name(signum)
        if name is None or name in ("SIGINT", "SIGTERM"):
            name = "unknown signal"

        log(fd, "\nSignal : [%d][%s] \n", int(signum), name)
        log(fd, "\n----------------- CRASH REPORT ---------------- \n")

        if frame is not None:
            for line in traceback.format_stack(frame):
                try:
                    os.write(fd, line.encode("utf-8", "replace"))
                except OSError:
                    break

        log(fd, "\n--------------- CRASH REPORT END -------------- \n")
        log(fd, "\nSignal handler completed! \n")

        try:
            os.close(fd)
        except OSError:
            pass

        try:
            signal.signal(signum, signal.SIG_DFL)
        except (OSError, ValueError, RuntimeError):
            pass

        os.kill(os.getpid(), signum)


def init():
    """Create a SignalHandler with no shutdown or log descriptor and install it."""
    return SignalHandler().install()