import faulthandler
import os
import signal
import sys
from unittest import mock

import pytest

from sclib.signals import SignalHandler, init, signal_name

_WATCHED = [
    getattr(signal, name)
    for name in (
        "SIGHUP",
        "SIGPIPE",
        "SIGTERM",
        "SIGINT",
        "SIGABRT",
        "SIGSEGV",
        "SIGBUS",
        "SIGFPE",
        "SIGILL",
        "SIGUSR1",
    )
    if hasattr(signal, name)
]


@pytest.fixture
def restore_signals():
    was_enabled = faulthandler.is_enabled()
    saved = {signum: signal.getsignal(signum) for signum in _WATCHED}
    yield
    for signum, handler in saved.items():
        signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
    if was_enabled:
        faulthandler.enable(file=sys.__stderr__)


@pytest.fixture
def log_pipe():
    r, w = os.pipe()
    yield r, w
    for fd in (r, w):
        try:
            os.close(fd)
        except OSError:
            pass


@pytest.fixture
def shutdown_pipe():
    r, w = os.pipe()
    yield r, w
    for fd in (r, w):
        try:
            os.close(fd)
        except OSError:
            pass


def _read_all(fd):
    chunks = []
    while True:
        chunk = os.read(fd, 65536)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks).decode()


def test_signal_names():
    assert signal_name(signal.SIGINT) == "SIGINT"
    assert signal_name(signal.SIGTERM) == "SIGTERM"
    assert signal_name(signal.SIGSEGV) == "SIGSEGV"
    assert signal_name(signal.SIGABRT) == "SIGABRT"
    assert signal_name(signal.SIGFPE) == "SIGFPE"
    assert signal_name(signal.SIGILL) == "SIGILL"


def test_signal_name_unknown():
    assert signal_name(10_000) is None


def test_init_installs_handlers(restore_signals):
    handler = init()
    assert isinstance(handler, SignalHandler)
    assert handler.shutdown_fd == -1
    assert handler.log_fd == -1
    assert signal.getsignal(signal.SIGINT) == handler.on_shutdown
    assert signal.getsignal(signal.SIGTERM) == handler.on_shutdown
    assert signal.getsignal(signal.SIGABRT) == handler.on_fatal
    assert signal.getsignal(signal.SIGSEGV) == handler.on_fatal


@pytest.mark.parametrize("name", ["SIGHUP", "SIGPIPE"])
def test_install_ignores_hangup_and_pipe(restore_signals, name):
    handler = SignalHandler()
    assert handler.install() is handler
    assert signal.getsignal(getattr(signal, name)) == signal.SIG_IGN


def test_install_failure_raises(restore_signals):
    with mock.patch("signal.signal", side_effect=OSError("boom")):
        with pytest.raises(OSError):
            SignalHandler().install()


def test_raised_sigterm_writes_shutdown_byte(restore_signals, log_pipe, shutdown_pipe):
    log_r, log_w = log_pipe
    sd_r, sd_w = shutdown_pipe
    handler = SignalHandler(shutdown_fd=sd_w, log_fd=log_w).install()

    signal.raise_signal(signal.SIGTERM)

    assert handler.will_shutdown is True
    assert os.read(sd_r, 16) == b"\x01"
    text = os.read(log_r, 65536).decode()
    assert f"Recv : SIGTERM, ({int(signal.SIGTERM)}) \n" in text
    assert "Sending shutdown command. \n" in text


def test_sigint_shutdown_byte(log_pipe, shutdown_pipe):
    log_r, log_w = log_pipe
    sd_r, sd_w = shutdown_pipe
    handler = SignalHandler(shutdown_fd=sd_w, log_fd=log_w)

    with mock.patch("os._exit") as exit_mock:
        handler.on_shutdown(signal.SIGINT, None)

    assert exit_mock.call_args_list == []
    assert handler.will_shutdown is True
    assert os.read(sd_r, 16) == b"\x01"
    text = os.read(log_r, 65536).decode()
    assert text == (
        f"Recv : SIGINT, ({int(signal.SIGINT)}) \n" "Sending shutdown command. \n"
    )


def test_unknown_shutdown_signal_name(log_pipe, shutdown_pipe):
    log_r, log_w = log_pipe
    sd_r, sd_w = shutdown_pipe
    handler = SignalHandler(shutdown_fd=sd_w, log_fd=log_w)

    handler.on_shutdown(signal.SIGUSR1, None)

    assert handler.will_shutdown is True
    assert os.read(sd_r, 16) == b"\x01"
    text = os.read(log_r, 65536).decode()
    assert text.startswith(f"Recv : Shutdown signal, ({int(signal.SIGUSR1)}) \n")


def test_second_shutdown_forces_exit(log_pipe, shutdown_pipe):
    log_r, log_w = log_pipe
    _, sd_w = shutdown_pipe
    handler = SignalHandler(shutdown_fd=sd_w, log_fd=log_w)

    with mock.patch("os._exit") as exit_mock:
        handler.on_shutdown(signal.SIGINT, None)
        handler.on_shutdown(signal.SIGINT, None)

    assert exit_mock.call_args_list == [mock.call(1)]
    assert handler.will_shutdown is True
    text = os.read(log_r, 65536).decode()
    assert text.endswith("Forcing shut down! \n")


def test_failed_shutdown_write_exits(log_pipe):
    log_r, log_w = log_pipe
    dead_r, dead_w = os.pipe()
    os.close(dead_r)
    os.close(dead_w)
    handler = SignalHandler(shutdown_fd=dead_w, log_fd=log_w)

    with mock.patch("os._exit") as exit_mock:
        handler.on_shutdown(signal.SIGINT, None)

    assert exit_mock.call_args_list == [mock.call(1)]
    text = os.read(log_r, 65536).decode()
    assert "Failed to send shutdown command, shutting down immediately! \n" in text


def test_no_shutdown_fd_exits_cleanly(log_pipe):
    log_r, log_w = log_pipe
    handler = SignalHandler(log_fd=log_w)

    with mock.patch("os._exit") as exit_mock:
        handler.on_shutdown(signal.SIGINT, None)

    assert exit_mock.call_args_list == [mock.call(0)]
    assert handler.will_shutdown is True
    text = os.read(log_r, 65536).decode()
    assert text.endswith("No shutdown handler, shutting down! \n")


@pytest.mark.parametrize("name", ["SIGSEGV", "SIGABRT", "SIGFPE", "SIGILL"])
def test_fatal_signal_report(restore_signals, log_pipe, name):
    log_r, log_w = log_pipe
    signum = getattr(signal, name)
    handler = SignalHandler(log_fd=log_w)

    with mock.patch("os.kill") as kill_mock:
        handler.on_fatal(signum, sys._getframe())

    assert kill_mock.call_args_list == [mock.call(os.getpid(), signum)]
    assert signal.getsignal(signum) == signal.SIG_DFL
    text = _read_all(log_r)
    assert text.startswith(f"\nSignal : [{int(signum)}][{name}] \n")
    assert "----------------- CRASH REPORT ----------------" in text
    assert "test_fatal_signal_report" in text
    assert text.endswith("\nSignal handler completed! \n")


def test_fatal_unknown_signal(restore_signals, log_pipe):
    log_r, log_w = log_pipe
    handler = SignalHandler(log_fd=log_w)

    with mock.patch("os.kill") as kill_mock:
        handler.on_fatal(signal.SIGUSR1, None)

    assert kill_mock.call_args_list == [mock.call(os.getpid(), signal.SIGUSR1)]
    text = _read_all(log_r)
    assert text.startswith(f"\nSignal : [{int(signal.SIGUSR1)}][unknown signal] \n")
    assert "CRASH REPORT END" in text