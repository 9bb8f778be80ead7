# -*- coding: utf-8 -*-
"""
Device reader thread.

Drains bytes from the open port for the life of a connection and hands each
complete line to `on_line`. It only ever reads; writes go through the
ConnectionManager on the foreground thread.
"""

import threading
from typing import Callable, Optional

import serial

from .config import ENCODING, MAX_LINE

LineCallback = Callable[[str], None]
LostCallback = Callable[[Optional[BaseException]], None]


class DeviceReaderThread(threading.Thread):
    def __init__(self, ser, *, on_line: LineCallback, on_lost: Optional[LostCallback] = None,
                 encoding: str = ENCODING, max_line: int = MAX_LINE):
        super().__init__(daemon=True, name="device-reader")
        self.ser = ser
        self.on_line = on_line
        self.on_lost = on_lost
        self.encoding = encoding
        self.max_line = max_line
        self._stop_event = threading.Event()
        self._buf = bytearray()
        self.lost = False

    def stop(self) -> None:
        self._stop_event.set()

    def _decode(self, raw: bytes) -> str:
        return raw.decode(self.encoding, errors="replace").rstrip("\r")

    def feed(self, data: bytes) -> None:
        """Buffer `data` and emit every line it completes."""
        self._buf.extend(data)
        while True:
            nl = self._buf.find(b"\n")
            if nl < 0:
                break
            raw = bytes(self._buf[:nl])
            del self._buf[:nl + 1]
            self.on_line(self._decode(raw))
        # overlong partial lines go out in max_line chunks
        while len(self._buf) >= self.max_line:
            raw = bytes(self._buf[:self.max_line])
            del self._buf[:self.max_line]
            self.on_line(self._decode(raw))

    def flush(self) -> None:
        if self._buf:
            raw = bytes(self._buf)
            self._buf.clear()
            self.on_line(self._decode(raw))

    def _mark_lost(self, err: Optional[BaseException]) -> None:
        self.lost = True
        self.flush()
        if self.on_lost is not None:
            self.on_lost(err)

    def run(self):
        while not self._stop_event.is_set():
            if not self.ser.is_open:
                self._mark_lost(None)
                return
            try:
                data = self.ser.read(self.ser.in_waiting or 1)
            except (serial.SerialException, OSError, TypeError) as e:
                # pyserial raises TypeError when the fd is torn down under a read
                if self._stop_event.is_set():
                    break
                self._mark_lost(e)
                return
            if data:
                self.feed(data)
        self.flush()
