# -*- coding: utf-8 -*-
"""
Script interpreter.

One Interpreter owns one ExecutionContext for one run: program counter,
variables, call stack and loop stack. Nothing is shared between runs.

Each step dispatches on the line's Op tag and either sets the next PC
explicitly or falls through to PC+1. ERRORED and HALTED are terminal.

Modes:
  normal   run to completion
  step     same transitions, operator confirms each line first
  dry-run  parse + validate only, never touches the connection
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from .config import is_supported_baud
from .console import Console, ui_kv
from .errors import (NotConnected, ReturnWithoutCall, ScriptError,
                     StepLimitExceeded, TransportIOError, UnknownLabel,
                     UnmatchedEndloop, UnmatchedLoop, UnsupportedBaudRate)
from .script import Op, Script, ScriptLine, match_loops, validate
from .variables import ConditionError, VariableStore, evaluate_condition


class Status(Enum):
    RUNNING = "running"
    HALTED = "halted"
    ERRORED = "errored"


class RunMode(Enum):
    NORMAL = "normal"
    STEP = "step"
    DRY_RUN = "dry-run"

    @classmethod
    def parse(cls, value: Union["RunMode", str]) -> "RunMode":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "-")
        if key in ("dryrun", "dry"):
            key = "dry-run"
        return cls(key)


@dataclass
class LoopFrame:
    body_start: int
    remaining: int


@dataclass
class ExecutionContext:
    program_counter: int = 0
    variables: VariableStore = field(default_factory=VariableStore)
    call_stack: List[int] = field(default_factory=list)
    loop_stack: List[LoopFrame] = field(default_factory=list)
    status: Status = Status.RUNNING


@dataclass
class ExecutionResult:
    status: Status
    steps: int = 0
    error: Optional[ScriptError] = None
    variables: Dict[str, str] = field(default_factory=dict)
    echoes: List[str] = field(default_factory=list)
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is Status.HALTED

    @property
    def line_number(self) -> Optional[int]:
        return self.error.line_number if self.error is not None else None


STEP_HELP = "enter=run  c=continue  q=quit"


class Interpreter:
    def __init__(self, script: Script, connection=None, console: Optional[Console] = None, *,
                 sleep: Callable[[float], None] = time.sleep,
                 prompt: Callable[[str], str] = input,
                 max_steps: Optional[int] = None):
        self.script = script
        self.lines = script.lines
        self.labels = script.labels
        self.connection = connection
        self.console = console if console is not None else Console()
        self.sleep = sleep
        self.prompt = prompt
        self.max_steps = max_steps
        self.ctx = ExecutionContext()
        self.steps = 0
        self.error: Optional[ScriptError] = None
        self.echoes: List[str] = []
        self.pending_baud: Optional[int] = None
        self._stepping = False
        self._loop_ends, _, _ = match_loops(self.lines)
        self._handlers = {
            Op.LABEL: self._do_label,
            Op.GOTO: self._do_goto,
            Op.WAIT: self._do_wait,
            Op.SET: self._do_set,
            Op.IF: self._do_if,
            Op.LOOP: self._do_loop,
            Op.ENDLOOP: self._do_endloop,
            Op.CALL: self._do_call,
            Op.RETURN: self._do_return,
            Op.BAUD: self._do_baud,
            Op.ECHO: self._do_echo,
            Op.STOP: self._do_stop,
            Op.PASS: self._do_pass,
        }

    # -------------------------------
    # Command handlers
    # -------------------------------

    def _target(self, label: str, line: ScriptLine) -> int:
        if label not in self.labels:
            raise UnknownLabel(label, line.line_number)
        return self.labels[label]

    def _do_label(self, line):
        return None

    def _do_goto(self, line):
        return self._target(line.args[0], line)

    def _do_wait(self, line):
        self.sleep(line.args[0] / 1000.0)

    def _do_set(self, line):
        name, expr = line.args
        self.ctx.variables.set(name, expr)

    def _do_if(self, line):
        cond, label = line.args
        try:
            taken = evaluate_condition(cond, self.ctx.variables)
        except ConditionError as e:
            self.console.warn(f"line {line.line_number}: {e}, treated as false")
            taken = False
        if taken:
            return self._target(label, line)
        return None

    def _do_loop(self, line):
        count = line.args[0]
        pc = self.ctx.program_counter
        if count == 0:
            end = self._loop_ends.get(pc)
            if end is None:
                raise UnmatchedLoop(line.line_number)
            return end + 1
        self.ctx.loop_stack.append(LoopFrame(pc + 1, count))
        return None

    def _do_endloop(self, line):
        stack = self.ctx.loop_stack
        if not stack:
            raise UnmatchedEndloop(line.line_number)
        top = stack[-1]
        top.remaining -= 1
        if top.remaining > 0:
            return top.body_start
        stack.pop()
        return None

    def _do_call(self, line):
        target = self._target(line.args[0], line)
        self.ctx.call_stack.append(self.ctx.program_counter + 1)
        return target

    def _do_return(self, line):
        if not self.ctx.call_stack:
            raise ReturnWithoutCall(line.line_number)
        return self.ctx.call_stack.pop()

    def _do_baud(self, line):
        raw = line.args[0]
        if not is_supported_baud(raw):
            self.console.warn(str(UnsupportedBaudRate(raw, line.line_number)) + ", keeping current rate")
            return None
        rate = int(raw)
        self.pending_baud = rate
        if self.connection is not None:
            self.connection.set_baud(rate)
        self.console.emit("baud", f"pending rate -> {rate} (applies on next connect)")
        return None

    def _do_echo(self, line):
        text = self.ctx.variables.substitute(line.args[0])
        self.echoes.append(text)
        self.console.emit("echo", text)

    def _do_stop(self, line):
        self.ctx.status = Status.HALTED

    def _do_pass(self, line):
        conn = self.connection
        if conn is None or not conn.is_open:
            raise NotConnected(line.line_number)
        try:
            conn.send_line(line.command)
        except NotConnected as e:
            raise NotConnected(line.line_number) from e
        except TransportIOError as e:
            raise TransportIOError(e.message, line.line_number) from e

    # -------------------------------
    # Stepping
    # -------------------------------

    @property
    def status(self) -> Status:
        return self.ctx.status

    def current_line(self) -> Optional[ScriptLine]:
        pc = self.ctx.program_counter
        return self.lines[pc] if 0 <= pc < len(self.lines) else None

    def _fail(self, err: ScriptError, line: Optional[ScriptLine]) -> None:
        if err.line_number is None and line is not None:
            err.line_number = line.line_number
        self.error = err
        self.ctx.status = Status.ERRORED
        src = f"  >> {line.original.strip()}" if line is not None else ""
        self.console.error(f"{err}{src}")

    def step(self) -> Status:
        """Execute the line at PC. Returns the status afterwards."""
        ctx = self.ctx
        if ctx.status is not Status.RUNNING:
            return ctx.status
        line = self.current_line()
        if line is None:
            ctx.status = Status.HALTED
            return ctx.status
        try:
            nxt = self._handlers[line.op](line)
        except ScriptError as e:
            self._fail(e, line)
            return ctx.status
        self.steps += 1
        if ctx.status is Status.RUNNING:
            ctx.program_counter = ctx.program_counter + 1 if nxt is None else nxt
            if ctx.program_counter >= len(self.lines):
                ctx.status = Status.HALTED
        return ctx.status

    def _confirm_step(self) -> bool:
        line = self.current_line()
        shown = line.command if line.op is not Op.LABEL else line.original.strip()
        self.console.emit("step", f"pc={self.ctx.program_counter} line {line.line_number}: {shown}")
        try:
            answer = self.prompt(f"[step] {STEP_HELP} > ")
        except EOFError:
            answer = "q"
        answer = (answer or "").strip().lower()
        if answer == "q":
            self.console.emit("step", "stopped by operator")
            self.ctx.status = Status.HALTED
            return False
        if answer == "c":
            self._stepping = False
        return True

    def _result(self, problems: Optional[List[str]] = None) -> ExecutionResult:
        return ExecutionResult(
            status=self.ctx.status, steps=self.steps, error=self.error,
            variables=self.ctx.variables.as_dict(), echoes=list(self.echoes),
            problems=list(problems or []))

    def run(self, mode: Union[RunMode, str] = RunMode.NORMAL) -> ExecutionResult:
        mode = RunMode.parse(mode)
        if mode is RunMode.DRY_RUN:
            return self.dry_run()
        self._stepping = mode is RunMode.STEP
        if not self.lines:
            self.ctx.status = Status.HALTED
        t0 = time.time()
        while self.ctx.status is Status.RUNNING:
            if self.max_steps is not None and self.steps >= self.max_steps:
                self._fail(StepLimitExceeded(self.max_steps), self.current_line())
                break
            if self._stepping and not self._confirm_step():
                break
            self.step()
        elapsed = time.time() - t0
        if self.ctx.status is Status.HALTED:
            self.console.info(f"script finished: {self.steps} steps in {elapsed:.2f}s")
        else:
            self.console.error(f"script aborted after {self.steps} steps")
        return self._result()

    def dry_run(self) -> ExecutionResult:
        listing = [f"{idx:>4}  L{ln.line_number:<4} {ln.original.strip() if ln.op is Op.LABEL else ln.command}"
                   for idx, ln in enumerate(self.lines)]
        labels = [ui_kv(name, str(idx), pad=16) for name, idx in sorted(self.labels.items(), key=lambda kv: kv[1])]
        self.console.block("dry run", listing + ["", "labels:"] + (labels or ["  (none)"]))
        problems = validate(self.script)
        for p in problems:
            self.console.emit("dry", p)
        if problems:
            self.error = ScriptError("; ".join(problems))
            self.ctx.status = Status.ERRORED
        else:
            self.console.emit("dry", f"ok: {len(self.lines)} lines, {len(self.labels)} labels")
            self.ctx.status = Status.HALTED
        return self._result(problems)


def run(lines, labels=None, mode: Union[RunMode, str] = RunMode.NORMAL, *,
        connection=None, console: Optional[Console] = None, **kwargs) -> ExecutionResult:
    """Run a parsed script. Accepts a Script or its (lines, labels) pair."""
    script = lines if isinstance(lines, Script) else Script(list(lines), dict(labels or {}))
    return Interpreter(script, connection, console, **kwargs).run(mode)
