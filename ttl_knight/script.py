# -*- coding: utf-8 -*-
"""
Script parser.

Script grammar, one command per physical line:

    <blank>                     ignored
    # comment  /  // comment    ignored
    10->START                   label definition (no-op slot)
    GOTO <label>
    WAIT <ms>
    SET <name> = <expr>
    IF <cond> GOTO <label>
    LOOP <n> ... ENDLOOP
    CALL <label> / RETURN
    BAUD <rate>
    ECHO <text>
    STOP
    anything else               passed through to the device

Every kept line is turned into a ScriptLine carrying its Op tag once, so the
interpreter never re-matches raw text. Lines that look like a keyword but do
not fit its syntax (``GOTO`` with no label, ``WAIT abc``) are pass-through.
"""

import codecs
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

from .errors import ParseError


class Op(Enum):
    LABEL = "label"
    GOTO = "goto"
    WAIT = "wait"
    SET = "set"
    IF = "if"
    LOOP = "loop"
    ENDLOOP = "endloop"
    CALL = "call"
    RETURN = "return"
    BAUD = "baud"
    ECHO = "echo"
    STOP = "stop"
    PASS = "pass"


@dataclass(frozen=True)
class ScriptLine:
    original: str
    command: str
    line_number: int
    op: Op = Op.PASS
    args: Tuple = field(default=())

    @property
    def target(self) -> Optional[str]:
        """Label name this line jumps to, if any."""
        if self.op in (Op.GOTO, Op.CALL):
            return self.args[0]
        if self.op is Op.IF:
            return self.args[1]
        return None


class Script(NamedTuple):
    lines: List[ScriptLine]
    labels: Dict[str, int]


# -------------------------------
# Line patterns
# -------------------------------

_LABEL_RE   = re.compile(r"^(\d+)->(\w+)$")
_COMMENT_RE = re.compile(r"^\s*(#|//)")
_GOTO_RE    = re.compile(r"^GOTO\s+(\w+)$", re.IGNORECASE)
_WAIT_RE    = re.compile(r"^WAIT\s+(\d+)$", re.IGNORECASE)
_SET_RE     = re.compile(r"^SET\s+(\w+)\s*=\s*(.+)$", re.IGNORECASE)
_IF_RE      = re.compile(r"^IF\s+(.+?)\s+GOTO\s+(\w+)$", re.IGNORECASE)
_LOOP_RE    = re.compile(r"^LOOP\s+(\d+)$", re.IGNORECASE)
_CALL_RE    = re.compile(r"^CALL\s+(\w+)$", re.IGNORECASE)
_BAUD_RE    = re.compile(r"^BAUD\s+(\d+)$", re.IGNORECASE)
_ECHO_RE    = re.compile(r"^ECHO(?:\s+(.*))?$", re.IGNORECASE)

_BARE = {"ENDLOOP": Op.ENDLOOP, "RETURN": Op.RETURN, "STOP": Op.STOP}


def normalize_label(name: str) -> str:
    return name.strip().upper()


def is_ignored(raw: str) -> bool:
    return not raw.strip() or bool(_COMMENT_RE.match(raw))


def classify(command: str) -> Tuple[Op, Tuple]:
    """Map one stripped command to its Op tag and arguments."""
    bare = _BARE.get(command.upper())
    if bare is not None:
        return bare, ()
    m = _GOTO_RE.match(command)
    if m:
        return Op.GOTO, (normalize_label(m.group(1)),)
    m = _WAIT_RE.match(command)
    if m:
        return Op.WAIT, (int(m.group(1)),)
    m = _SET_RE.match(command)
    if m:
        return Op.SET, (m.group(1), m.group(2).strip())
    m = _IF_RE.match(command)
    if m:
        return Op.IF, (m.group(1).strip(), normalize_label(m.group(2)))
    m = _LOOP_RE.match(command)
    if m:
        return Op.LOOP, (int(m.group(1)),)
    m = _CALL_RE.match(command)
    if m:
        return Op.CALL, (normalize_label(m.group(1)),)
    m = _BAUD_RE.match(command)
    if m:
        return Op.BAUD, (m.group(1),)
    m = _ECHO_RE.match(command)
    if m:
        return Op.ECHO, (m.group(1) or "",)
    return Op.PASS, (command,)


def parse(text: str) -> Script:
    """
    Turn script text into (lines, labels).

    Blank and comment lines take no slot. A label definition takes a slot of
    its own holding a no-op, so jumping to it falls through to the next line.
    A label defined twice keeps the last definition.
    """
    lines: List[ScriptLine] = []
    labels: Dict[str, int] = {}
    for number, raw in enumerate(text.splitlines(), start=1):
        if is_ignored(raw):
            continue
        command = raw.strip()
        m = _LABEL_RE.match(command)
        if m:
            name = normalize_label(m.group(2))
            labels[name] = len(lines)
            lines.append(ScriptLine(raw, "", number, Op.LABEL, (name,)))
            continue
        op, args = classify(command)
        lines.append(ScriptLine(raw, command, number, op, args))
    return Script(lines, labels)


def load_script(path: str) -> Script:
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise ParseError(f"cannot read {path}: {e}") from e
    if data.startswith(codecs.BOM_UTF8):
        data = data[len(codecs.BOM_UTF8):]
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"{path} is not UTF-8 text: {e}") from e
    return parse(text)


# -------------------------------
# Static checks
# -------------------------------

def match_loops(lines: List[ScriptLine]) -> Tuple[Dict[int, int], List[int], List[int]]:
    """
    Pair LOOP and ENDLOOP slots by nesting in file order.

    Returns (pairs, unmatched_loops, unmatched_endloops) where pairs maps a
    LOOP index to its ENDLOOP index.
    """
    pairs: Dict[int, int] = {}
    open_loops: List[int] = []
    stray: List[int] = []
    for idx, line in enumerate(lines):
        if line.op is Op.LOOP:
            open_loops.append(idx)
        elif line.op is Op.ENDLOOP:
            if open_loops:
                pairs[open_loops.pop()] = idx
            else:
                stray.append(idx)
    return pairs, open_loops, stray


def unresolved_labels(script: Script) -> List[ScriptLine]:
    return [ln for ln in script.lines
            if ln.target is not None and ln.target not in script.labels]


def validate(script: Script) -> List[str]:
    """Problems a dry run reports; empty when every jump target resolves."""
    problems = []
    for ln in unresolved_labels(script):
        problems.append(f"line {ln.line_number}: unknown label '{ln.target}'")
    _, loops, stray = match_loops(script.lines)
    for idx in loops:
        problems.append(f"line {script.lines[idx].line_number}: LOOP without matching ENDLOOP")
    for idx in stray:
        problems.append(f"line {script.lines[idx].line_number}: unmatched ENDLOOP")
    return problems
