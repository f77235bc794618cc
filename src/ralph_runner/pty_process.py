"""Spawn the agent behind a pseudo-terminal and stream its output.

Many agent CLIs change behavior when stdin is not a TTY, so the child gets the
slave side of a pty as stdin while stdout and stderr stay pipes. Each pipe is
drained by its own thread with its own incremental UTF-8 decoder; a third
thread reaps the child and reports the exit once both readers are done, or
after a short shared deadline when a background process keeps a pipe open.
"""

from __future__ import annotations

import codecs
import fcntl
import os
import pty
import signal
import struct
import subprocess
import termios
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Callable, Optional

from loguru import logger

from .constants import (
    DEFAULT_COLUMNS,
    DEFAULT_ROWS,
    PTY_GROUP_POLL_SECONDS,
    PTY_JOIN_TIMEOUT_SECONDS,
    PTY_KILL_GRACE_SECONDS,
    PTY_READ_CHUNK_BYTES,
    PTY_TERM,
)
from .models import PtyExit

DataCallback = Callable[[str], None]
ExitCallback = Callable[[PtyExit], None]


@dataclass
class PtyOptions:
    columns: int = DEFAULT_COLUMNS
    rows: int = DEFAULT_ROWS
    cwd: Optional[Path] = None
    env: dict[str, str] = field(default_factory=dict)


def _winsize(columns: int, rows: int) -> bytes:
    return struct.pack("HHHH", rows, columns, 0, 0)


def _disable_echo(fd: int) -> None:
    try:
        attrs = termios.tcgetattr(fd)
        attrs[3] &= ~termios.ECHO
        termios.tcsetattr(fd, termios.TCSANOW, attrs)
    except termios.error as exc:
        logger.debug("pty: unable to disable echo: {}", exc)


class PtyProcess:
    """One subprocess attached to a pseudo-terminal.

    Listeners registered with `on_data` receive decoded text from stdout and
    stderr in arrival order. Output produced before the first listener
    registers is buffered and handed to it. `on_exit` listeners are called
    exactly once with the exit status.
    """

    def __init__(self, command: list[str], options: Optional[PtyOptions] = None):
        options = options or PtyOptions()
        self.command = list(command)
        self._lock = threading.RLock()
        self._data_callbacks: list[DataCallback] = []
        self._exit_callbacks: list[ExitCallback] = []
        self._pending: list[str] = []
        self._exit_info: Optional[PtyExit] = None
        self._exited = threading.Event()
        self._cleaned_up = False
        self._group_gone = False

        env = {
            **os.environ,
            **options.env,
            "TERM": PTY_TERM,
            "COLUMNS": str(options.columns),
            "LINES": str(options.rows),
        }

        master_fd, slave_fd = pty.openpty()
        try:
            fcntl.ioctl(slave_fd, termios.TIOCSWINSZ, _winsize(options.columns, options.rows))
            _disable_echo(slave_fd)
            self._proc = subprocess.Popen(
                self.command,
                cwd=options.cwd,
                env=env,
                stdin=slave_fd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except Exception:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)

        self._master_fd = master_fd
        self.pid = self._proc.pid
        logger.debug("pty: spawned pid={} command={}", self.pid, self.command[:1])

        self._readers = [
            threading.Thread(
                target=self._read_stream,
                args=(self._proc.stdout, "stdout"),
                name=f"pty-stdout-{self.pid}",
                daemon=True,
            ),
            threading.Thread(
                target=self._read_stream,
                args=(self._proc.stderr, "stderr"),
                name=f"pty-stderr-{self.pid}",
                daemon=True,
            ),
        ]
        for reader in self._readers:
            reader.start()
        self._waiter = threading.Thread(
            target=self._wait_for_exit,
            name=f"pty-wait-{self.pid}",
            daemon=True,
        )
        self._waiter.start()

    def __enter__(self) -> "PtyProcess":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.cleanup()

    @property
    def exit_info(self) -> Optional[PtyExit]:
        return self._exit_info

    def is_alive(self) -> bool:
        return not self._exited.is_set()

    def on_data(self, callback: DataCallback) -> None:
        with self._lock:
            self._data_callbacks.append(callback)
            pending, self._pending = self._pending, []
            for text in pending:
                self._invoke(callback, text)

    def on_exit(self, callback: ExitCallback) -> None:
        with self._lock:
            info = self._exit_info
            if info is None:
                self._exit_callbacks.append(callback)
                return
        self._invoke(callback, info)

    def write(self, text: str) -> None:
        if self._cleaned_up:
            return
        data = text.encode("utf-8")
        try:
            while data:
                written = os.write(self._master_fd, data)
                data = data[written:]
        except OSError as exc:
            logger.warning("pty: stdin write error (pid={}): {}", self.pid, exc)

    def resize(self, columns: int, rows: int) -> None:
        if self._cleaned_up:
            logger.debug("pty: resize ignored after cleanup (pid={})", self.pid)
            return
        try:
            fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, _winsize(columns, rows))
        except (OSError, AttributeError) as exc:
            logger.debug(
                "pty: resize requested but not supported (cols={}, rows={}): {}",
                columns,
                rows,
                exc,
            )

    def kill(self) -> None:
        """Ask the child and everything left in its process group to terminate."""
        self._signal_group(signal.SIGTERM)

    def cleanup(self) -> None:
        """Stop delivering data, terminate the child's process group, close the pty.

        Processes the child started in the background (servers, language
        servers) share its process group and are terminated too, even when the
        child itself has already exited.
        """
        with self._lock:
            if self._cleaned_up:
                return
            self._cleaned_up = True
            self._pending.clear()

        if not self._exited.is_set():
            self.kill()
            if not self._exited.wait(PTY_KILL_GRACE_SECONDS):
                logger.warning("pty: pid={} ignored SIGTERM; sending SIGKILL", self.pid)
                self._signal_group(signal.SIGKILL)
        self._stop_group()
        self._join_readers()
        try:
            os.close(self._master_fd)
        except OSError as exc:
            logger.debug("pty: closing master fd failed: {}", exc)

    def _stop_group(self) -> None:
        if not self._group_alive():
            return
        logger.debug("pty: terminating leftover processes in group {}", self.pid)
        self._signal_group(signal.SIGTERM)
        deadline = time.monotonic() + PTY_KILL_GRACE_SECONDS
        while self._group_alive():
            if time.monotonic() >= deadline:
                logger.warning("pty: process group {} ignored SIGTERM; sending SIGKILL", self.pid)
                self._signal_group(signal.SIGKILL)
                return
            time.sleep(PTY_GROUP_POLL_SECONDS)

    def _group_alive(self) -> bool:
        if self._group_gone:
            return False
        try:
            os.killpg(self.pid, 0)
        except ProcessLookupError:
            self._group_gone = True
            return False
        except PermissionError:
            return True
        return True

    def _signal_group(self, sig: int) -> None:
        # Once the group is empty its id may be reused.
        if self._group_gone:
            return
        try:
            os.killpg(self.pid, sig)
        except ProcessLookupError:
            self._group_gone = True
        except OSError as exc:
            logger.warning("pty: kill error (pid={}, signal={}): {}", self.pid, sig, exc)

    def _join_readers(self) -> None:
        deadline = time.monotonic() + PTY_JOIN_TIMEOUT_SECONDS
        for reader in self._readers:
            reader.join(timeout=max(deadline - time.monotonic(), 0))
        if any(reader.is_alive() for reader in self._readers):
            logger.debug("pty: output pipes of pid={} still open after exit", self.pid)

    def _invoke(self, callback: Callable[[Any], None], payload: Any) -> None:
        try:
            callback(payload)
        except Exception:
            logger.exception("pty: listener failed (pid={})", self.pid)

    def _push_data(self, text: str) -> None:
        with self._lock:
            if self._cleaned_up:
                return
            if not self._data_callbacks:
                self._pending.append(text)
                return
            for callback in list(self._data_callbacks):
                self._invoke(callback, text)

    def _read_stream(self, stream: IO[bytes], label: str) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = stream.read1(PTY_READ_CHUNK_BYTES)  # type: ignore[attr-defined]
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text:
                    self._push_data(text)
            tail = decoder.decode(b"", final=True)
            if tail:
                self._push_data(tail)
        except (OSError, ValueError) as exc:
            logger.warning("pty: {} read error (pid={}): {}", label, self.pid, exc)
        finally:
            try:
                stream.close()
            except OSError:
                pass

    def _wait_for_exit(self) -> None:
        returncode = self._proc.wait()
        self._exited.set()
        self._join_readers()

        if returncode < 0:
            info = PtyExit(exit_code=128 - returncode, signal=-returncode)
        else:
            info = PtyExit(exit_code=returncode)
        logger.debug("pty: pid={} exited code={} signal={}", self.pid, info.exit_code, info.signal)

        with self._lock:
            self._exit_info = info
            callbacks, self._exit_callbacks = self._exit_callbacks, []
        for callback in callbacks:
            self._invoke(callback, info)


def spawn_pty(command: list[str], options: Optional[PtyOptions] = None) -> PtyProcess:
    """Spawn `command` attached to a pseudo-terminal.

    Args:
        command: Program and arguments.
        options: Terminal size, working directory and environment overrides.

    Returns:
        The running `PtyProcess`. Callers must call `cleanup()` (or use it as a
        context manager) on every exit path.

    Raises:
        OSError: If the program cannot be started.
    """
    return PtyProcess(command, options)
