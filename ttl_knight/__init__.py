"""TTL Knight: drive a microcontroller over serial with small line scripts."""

__version__ = "1.3.0"

from .connection import ConnectionManager, list_serial_ports
from .console import Console
from .errors import (AlreadyConnected, NotConnected, ParseError,
                     ReturnWithoutCall, ScriptError, TransportIOError,
                     UnknownLabel, UnmatchedEndloop, UnmatchedLoop,
                     UnsupportedBaudRate)
from .interpreter import (ExecutionContext, ExecutionResult, Interpreter,
                          RunMode, Status, run)
from .script import Op, Script, ScriptLine, load_script, parse, validate
from .variables import VariableStore, evaluate_condition
