# -*- coding: utf-8 -*-
"""
Error kinds raised by the parser, interpreter and connection manager.

Interpreter-fatal errors carry the source line number so the operator can
find the offending script line. UnsupportedBaudRate is the one kind the
interpreter recovers from locally.
"""

from typing import Optional


class TTLKnightError(Exception):
    """Base class for every error raised by ttl_knight."""


class ParseError(TTLKnightError):
    """Script text could not be read at all (bad file, bad encoding)."""


class ScriptError(TTLKnightError):
    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line_number = line_number

    def __str__(self) -> str:
        if self.line_number is None:
            return self.message
        return f"line {self.line_number}: {self.message}"


class UnknownLabel(ScriptError):
    def __init__(self, label: str, line_number: Optional[int] = None):
        super().__init__(f"unknown label '{label}'", line_number)
        self.label = label


class UnmatchedEndloop(ScriptError):
    def __init__(self, line_number: Optional[int] = None):
        super().__init__("unmatched ENDLOOP", line_number)


class UnmatchedLoop(ScriptError):
    def __init__(self, line_number: Optional[int] = None):
        super().__init__("LOOP without matching ENDLOOP", line_number)


class ReturnWithoutCall(ScriptError):
    def __init__(self, line_number: Optional[int] = None):
        super().__init__("return without call", line_number)


class NotConnected(ScriptError):
    def __init__(self, line_number: Optional[int] = None):
        super().__init__("not connected", line_number)


class UnsupportedBaudRate(ScriptError):
    def __init__(self, rate, line_number: Optional[int] = None):
        super().__init__(f"unsupported baud rate {rate}", line_number)
        self.rate = rate


class TransportIOError(ScriptError):
    pass


class AlreadyConnected(TTLKnightError):
    """open() called while a connection is still open."""


class StepLimitExceeded(ScriptError):
    def __init__(self, limit: int, line_number: Optional[int] = None):
        super().__init__(f"step limit {limit} reached", line_number)
        self.limit = limit
