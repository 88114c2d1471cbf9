"""
Terminal loop for cratedig.

Puts the terminal in cbreak mode, decodes key presses, forwards them to the
controller and redraws the frame when something changed.
"""
import fcntl
import os
import select
import shutil
import signal
import struct
import sys
import termios
import time
import tty
from typing import Any, Callable, Dict, Optional, TextIO, Tuple

from .controller import Controller
from .logging_config import get_logger
from .preview import EngineState
from .render import render_frame

logger = get_logger('app')

KEY_NAMES: Dict[str, str] = {
    "\r": "enter",
    "\n": "enter",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\t": "tab",
    "\x03": "ctrl+c",
    "\x04": "ctrl+d",
    "\x15": "ctrl+u",
}

ESCAPE_SEQUENCES: Dict[str, str] = {
    "[A": "up",
    "[B": "down",
    "[C": "right",
    "[D": "left",
    "OA": "up",
    "OB": "down",
    "OC": "right",
    "OD": "left",
}


def decode_key(ch: str, read_sequence: Callable[[], Optional[str]]) -> Optional[str]:
    """Turn raw terminal input into a key name.

    Args:
        ch: First character read
        read_sequence: Returns the two characters following an escape, or
            None when the escape was pressed on its own

    Returns:
        Key name, or None for sequences that are not bound
    """
    if ch == "\x1b":
        seq = read_sequence()
        if not seq:
            return "esc"
        return ESCAPE_SEQUENCES.get(seq)
    if ch in KEY_NAMES:
        return KEY_NAMES[ch]
    if ch.isprintable():
        return ch
    return None


def _get_terminal_size() -> Tuple[int, int]:
    """Get actual terminal size using ioctl with fallback to shutil."""
    try:
        if sys.stdout.isatty():
            winsize = struct.pack("HHHH", 0, 0, 0, 0)
            result = fcntl.ioctl(sys.stdout.fileno(), termios.TIOCGWINSZ, winsize)
            rows, cols, _, _ = struct.unpack("HHHH", result)
            if rows > 0 and cols > 0:
                return (rows, cols)
    except OSError:
        pass
    size = shutil.get_terminal_size()
    return (size.lines, size.columns)


def _utf8_length(lead: int) -> int:
    if lead >= 0xF0:
        return 4
    if lead >= 0xE0:
        return 3
    if lead >= 0xC0:
        return 2
    return 1


class App:
    """Interactive session bound to the controlling terminal."""

    def __init__(self, controller: Controller, redraw_interval: float = 0.12,
                 stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout):
        self.controller = controller
        self.redraw_interval = redraw_interval
        self.stdin = stdin
        self.stdout = stdout
        self._resized = False

    @property
    def session(self):
        return self.controller.session

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------
    def _read_char(self, fd: int) -> str:
        data = os.read(fd, 1)
        if not data:
            raise EOFError
        extra = _utf8_length(data[0]) - 1
        if extra:
            data += os.read(fd, extra)
        return data.decode("utf-8", errors="replace")

    def _read_sequence(self, fd: int) -> Optional[str]:
        if not select.select([fd], [], [], 0.01)[0]:
            return None
        seq = self._read_char(fd)
        if select.select([fd], [], [], 0.01)[0]:
            seq += self._read_char(fd)
        return seq

    def _read_keys(self, fd: int) -> bool:
        """Feed every pending key to the controller. Returns True if any arrived."""
        handled = False
        while not self.session.quitting:
            try:
                if not select.select([fd], [], [], 0.05)[0]:
                    break
                ch = self._read_char(fd)
            except InterruptedError:
                break
            except EOFError:
                self.session.quitting = True
                break
            key = decode_key(ch, lambda: self._read_sequence(fd))
            if key is None:
                continue
            self.controller.handle_key(key)
            handled = True
        return handled

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------
    def _now_playing(self) -> Optional[str]:
        engine = self.controller.engine
        if engine.state is EngineState.PLAYING and engine.current_path:
            return os.path.basename(engine.current_path)
        return None

    def draw(self) -> None:
        rows, cols = _get_terminal_size()
        lines = render_frame(
            self.session, cols, rows,
            now_playing=self._now_playing(),
            walking=self.controller.walking,
        )
        self.stdout.write("\033[2J\033[H" + "\r\n".join(lines))
        self.stdout.flush()

    # -------------------------------------------------------------------------
    # Signals
    # -------------------------------------------------------------------------
    def _handle_resize(self, signum: Optional[int] = None, frame: Any = None) -> None:
        self._resized = True

    def _handle_exit(self, signum: Optional[int] = None, frame: Any = None) -> None:
        logger.info(f"Received signal {signum}, quitting")
        self.session.quitting = True

    def _install_signals(self) -> Dict[int, Any]:
        previous = {}
        for signum, handler in (
            (signal.SIGWINCH, self._handle_resize),
            (signal.SIGINT, self._handle_exit),
            (signal.SIGTERM, self._handle_exit),
            (signal.SIGHUP, self._handle_exit),
        ):
            previous[signum] = signal.signal(signum, handler)
        return previous

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------
    def run(self) -> None:
        """Run until the user quits, then restore the terminal."""
        fd = self.stdin.fileno()
        old = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        previous_signals = self._install_signals()

        # Hide cursor for clean UI display
        self.stdout.write("\033[?25l")

        last_draw = 0.0
        last_playing: Optional[str] = None
        last_walking = False
        dirty = True
        try:
            while not self.session.quitting:
                if self.controller.tick():
                    dirty = True

                now = time.time()
                playing = self._now_playing()
                walking = self.controller.walking
                needs_redraw = (
                    dirty
                    or self._resized
                    or playing != last_playing
                    or walking != last_walking
                    or (walking and now - last_draw >= self.redraw_interval)
                )
                if needs_redraw:
                    self.draw()
                    last_draw = now
                    last_playing = playing
                    last_walking = walking
                    self._resized = False
                    dirty = False

                if self._read_keys(fd):
                    dirty = True
        finally:
            logger.info("Shutting down")
            self.controller.engine.close()
            self.session.store.close()
            self.controller.catalog.close()
            for signum, handler in previous_signals.items():
                signal.signal(signum, handler)
            # Restore cursor visibility and terminal settings
            self.stdout.write("\033[?25h")
            termios.tcsetattr(fd, termios.TCSADRAIN, old)
            self.stdout.write("\033[2J\033[H\n  Bye!\n")
            self.stdout.flush()
