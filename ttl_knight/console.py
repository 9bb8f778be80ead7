# -*- coding: utf-8 -*-
"""
Console output sink shared by the reader thread and the foreground loop.

Every line goes through Console.emit() under one lock so device output and
interpreter output never tear each other. Ordering between the two sides is
whatever order they reach the lock in.
"""

import sys
import threading
from datetime import datetime
from typing import List, Optional, TextIO

# UI formatting helpers =================================================
UI_WIDTH = 66


def ui_line(char="-", width=UI_WIDTH):
    return char * width


def ui_head(title, width=UI_WIDTH):
    t = f" {title} "
    if len(t) >= width - 2:
        return t
    side = (width - len(t)) // 2
    return f"{'-'*side}{t}{'-'*(width-len(t)-side)}"


def ui_kv(label, value, pad=14):
    return f"{label.rjust(pad)} : {value}"


class Console:
    def __init__(self, stream: Optional[TextIO] = None, log_path: Optional[str] = None,
                 quiet_rx: bool = False):
        self.stream = stream
        self.quiet_rx = quiet_rx
        self.log_path = None
        self._log_file: Optional[TextIO] = None
        self._lock = threading.Lock()
        if log_path:
            self.open_log(log_path)

    # ---- session log ----------------------------------------------------
    def open_log(self, path: str) -> bool:
        self.close_log()
        try:
            self._log_file = open(path, "a", encoding="utf-8")
        except OSError as e:
            self.emit("warn", f"log open failed: {e}")
            return False
        self.log_path = path
        self.emit("info", f"logging -> {path}")
        return True

    def close_log(self) -> None:
        with self._lock:
            if self._log_file is not None:
                try:
                    self._log_file.close()
                except OSError:
                    pass
            self._log_file = None
            self.log_path = None

    def _log(self, text: str) -> None:
        if self._log_file is None:
            return
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        try:
            self._log_file.write(f"[{ts}] {text}\n")
            self._log_file.flush()
        except (OSError, ValueError) as e:
            self._log_file = None
            self.log_path = None
            out = self._out()
            out.write(f"[warn] log write failed: {e}\n")
            out.flush()

    # ---- output ---------------------------------------------------------
    def _out(self) -> TextIO:
        return self.stream if self.stream is not None else sys.stdout

    def write(self, text: str = "", *, to_console: bool = True) -> None:
        with self._lock:
            if to_console:
                out = self._out()
                out.write(text + "\n")
                out.flush()
            self._log(text)

    def emit(self, tag: str, msg: str) -> None:
        self.write(f"[{tag}] {msg}")

    def rx(self, line: str) -> None:
        self.write(f"[rx] {line}", to_console=not self.quiet_rx)

    def block(self, title: str, lines: List[str]) -> None:
        # one lock hold so a block is never split by reader output
        with self._lock:
            out = self._out()
            for ln in [ui_head(title)] + list(lines) + [ui_line()]:
                out.write(ln + "\n")
                self._log(ln)
            out.flush()

    def info(self, msg: str) -> None:
        self.emit("info", msg)

    def warn(self, msg: str) -> None:
        self.emit("warn", msg)

    def error(self, msg: str) -> None:
        self.emit("err", msg)
