"""Raw keyboard input for the dashboard."""

import os
import select
import sys
import termios
import tty
from typing import Optional

ESCAPE_SEQUENCES = {
    "\x1b[A": "UP",
    "\x1bOA": "UP",
    "\x1b[B": "DOWN",
    "\x1bOB": "DOWN",
    "\x1b[D": "LEFT",
    "\x1bOD": "LEFT",
    "\x1b[C": "RIGHT",
    "\x1bOC": "RIGHT",
    "\x1b[5~": "PGUP",
    "\x1b[6~": "PGDN",
    "\x1b": "ESC",
}


class Terminal:
    """
    Puts stdin in cbreak mode and decodes single key presses. Named keys come
    back as UP/DOWN/LEFT/RIGHT/PGUP/PGDN/ENTER/ESC/TAB/BACKSPACE, everything
    else as the character itself.
    """

    def __init__(self, stream=None):
        self._stream = stream or sys.stdin
        self._orig_term_attrs = None

    def enable_raw_mode(self) -> None:
        try:
            fd = self._stream.fileno()
            self._orig_term_attrs = termios.tcgetattr(fd)
            # cbreak keeps Ctrl+C as SIGINT but delivers keys immediately
            tty.setcbreak(fd)
        except (termios.error, OSError, ValueError):
            self._orig_term_attrs = None

    def disable_raw_mode(self) -> None:
        if self._orig_term_attrs is None:
            return
        try:
            termios.tcsetattr(
                self._stream.fileno(), termios.TCSADRAIN, self._orig_term_attrs
            )
        except (termios.error, OSError, ValueError):
            pass

    def read_key(self, timeout: float = 0.0) -> Optional[str]:
        """Wait up to `timeout` seconds for a key. None if nothing arrived."""
        fd = self._stream.fileno()
        rlist, _, _ = select.select([fd], [], [], timeout)
        if not rlist:
            return None

        ch1 = os.read(fd, 1).decode("utf-8", errors="ignore")
        return self.decode(ch1, fd)

    def decode(self, ch1: str, fd: Optional[int] = None) -> str:
        if ch1 in ("\r", "\n"):
            return "ENTER"
        if ch1 == "\t":
            return "TAB"
        if ch1 in ("\x7f", "\x08"):
            return "BACKSPACE"
        if ch1 != "\x1b":
            return ch1
        if fd is None:
            return "ESC"

        # Read the rest of an escape sequence quickly
        seq = ch1
        for _ in range(3):
            if select.select([fd], [], [], 0.01)[0]:
                seq += os.read(fd, 1).decode("utf-8", errors="ignore")
            else:
                break
            if seq in ESCAPE_SEQUENCES:
                break
        return ESCAPE_SEQUENCES.get(seq, "")
