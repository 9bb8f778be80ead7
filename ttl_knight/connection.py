# -*- coding: utf-8 -*-
"""
Connection manager: owns the one open serial port and its reader thread.

The frame format is fixed at 8N1. `port` may be a device name (COM5,
/dev/ttyUSB0) or any pyserial URL such as loop:// or socket://host:port.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import serial
from serial.tools import list_ports

from . import config
from .console import Console
from .errors import (AlreadyConnected, NotConnected, TransportIOError,
                     UnsupportedBaudRate)
from .reader import DeviceReaderThread


@dataclass
class Connection:
    port: str
    baud_rate: int
    handle: Any

    @property
    def is_open(self) -> bool:
        return bool(self.handle is not None and self.handle.is_open)


def list_serial_ports() -> List[Any]:
    return sorted(list_ports.comports(), key=lambda p: p.device)


def normalize_line(command: str, line_ending: str = config.LINE_ENDING) -> str:
    return command.strip() + line_ending


class ConnectionManager:
    def __init__(self, console: Optional[Console] = None, *,
                 baud_rate: int = config.DEFAULT_BAUD,
                 on_line: Optional[Callable[[str], None]] = None,
                 encoding: str = config.ENCODING,
                 read_timeout: float = config.READ_TIMEOUT,
                 tx_echo: bool = True):
        if not config.is_supported_baud(baud_rate):
            raise UnsupportedBaudRate(baud_rate)
        self.console = console if console is not None else Console()
        self.pending_baud = int(baud_rate)
        self.on_line = on_line if on_line is not None else self.console.rx
        self.encoding = encoding
        self.read_timeout = read_timeout
        self.tx_echo = tx_echo
        self._conn: Optional[Connection] = None
        self._reader: Optional[DeviceReaderThread] = None
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()

    # ---- state ----------------------------------------------------------
    @property
    def connection(self) -> Optional[Connection]:
        return self._conn

    @property
    def reader(self) -> Optional[DeviceReaderThread]:
        return self._reader

    @property
    def is_open(self) -> bool:
        conn, reader = self._conn, self._reader
        if conn is None or not conn.is_open:
            return False
        return not (reader is not None and reader.lost)

    def set_baud(self, rate) -> int:
        """Change the rate used by the next open(); an open port keeps its rate."""
        if not config.is_supported_baud(rate):
            raise UnsupportedBaudRate(rate)
        self.pending_baud = int(rate)
        return self.pending_baud

    def info(self) -> Dict[str, Any]:
        conn = self._conn
        return {
            "port": conn.port if conn else None,
            "baud": conn.baud_rate if conn else self.pending_baud,
            "pending_baud": self.pending_baud,
            "frame": f"{config.DATA_BITS}{config.PARITY_NAME[0].upper()}{config.STOP_BITS}",
            "state": "connected" if self.is_open else ("lost" if conn else "closed"),
        }

    # ---- lifecycle ------------------------------------------------------
    def _on_lost(self, err: Optional[BaseException]) -> None:
        reason = f": {err}" if err else ""
        self.console.emit("conn", f"connection lost{reason}")

    def open(self, port: str, baud_rate: Optional[int] = None) -> Connection:
        if self._conn is not None:
            if self.is_open:
                raise AlreadyConnected(f"already connected to {self._conn.port}; close first")
            self.close()
        baud = self.pending_baud if baud_rate is None else baud_rate
        if not config.is_supported_baud(baud):
            raise UnsupportedBaudRate(baud)
        baud = int(baud)
        try:
            ser = serial.serial_for_url(
                port, baudrate=baud,
                bytesize=serial.EIGHTBITS, parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.read_timeout, write_timeout=config.WRITE_TIMEOUT)
        except (serial.SerialException, OSError, ValueError) as e:
            raise TransportIOError(f"cannot open {port}: {e}") from e

        with self._lock:
            self._conn = Connection(port, baud, ser)
            self.pending_baud = baud
            self._reader = DeviceReaderThread(
                ser, on_line=self.on_line, on_lost=self._on_lost, encoding=self.encoding)
            self._reader.start()
        self.console.emit("conn", f"opened {port} @ {baud} 8N1")
        return self._conn

    def close(self) -> None:
        with self._lock:
            conn, reader = self._conn, self._reader
            self._conn = None
            self._reader = None
        if conn is None and reader is None:
            return
        if reader is not None:
            reader.stop()
            if reader is not threading.current_thread():
                reader.join(config.JOIN_TIMEOUT)
        if conn is not None and conn.handle is not None:
            try:
                conn.handle.close()
            except (serial.SerialException, OSError) as e:
                self.console.warn(f"close failed: {e}")
        # closing the handle unblocks a read that outlived the first join
        if reader is not None and reader.is_alive() and reader is not threading.current_thread():
            reader.join()
        if conn is not None:
            self.console.emit("conn", f"closed {conn.port}")

    # ---- output ---------------------------------------------------------
    def write(self, data: bytes) -> int:
        conn = self._conn
        if conn is None or not self.is_open:
            raise NotConnected()
        with self._send_lock:
            try:
                n = conn.handle.write(data)
                conn.handle.flush()
            except (serial.SerialException, OSError) as e:
                err = e
            else:
                return n if n is not None else len(data)
        self.console.error(f"tx failed: {err}")
        self.close()
        raise TransportIOError(f"write failed: {err}") from err

    def send_line(self, command: str) -> str:
        """Send one pass-through command, CRLF-terminated unless it already ends a line."""
        if not self.is_open:
            raise NotConnected()
        text = normalize_line(command)
        if self.tx_echo:
            self.console.emit("tx", command.strip())
        self.write(text.encode(self.encoding, errors="replace"))
        return text

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
