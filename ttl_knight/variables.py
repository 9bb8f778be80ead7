# -*- coding: utf-8 -*-
"""
Variable store and ${NAME} substitution.

Unbound names substitute as the empty string. There is no error for a typo,
so `ECHO ${CONUT}` prints an empty slot rather than failing.
"""

import re
from typing import Dict, Optional

_TEMPLATE_RE = re.compile(r"\$\{(\w+)\}")
_ARITH_RE    = re.compile(r"^(-?\d+)([+-])(-?\d+)$")
_IDENT_RE    = re.compile(r"^\w+$")


class VariableStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, name: str, default: str = "") -> str:
        return self._values.get(name, default)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def substitute(self, text: str) -> str:
        return _TEMPLATE_RE.sub(lambda m: self._values.get(m.group(1), ""), text)

    def set(self, name: str, raw_expr: str) -> str:
        """
        Bind `name` to `raw_expr` after substitution.

        A result of the exact form <int>+<int> or <int>-<int> is evaluated, so
        `SET COUNT = ${COUNT}+1` counts. Anything else is stored as text.
        """
        value = self.substitute(raw_expr).strip()
        m = _ARITH_RE.match(value)
        if m:
            a, sign, b = int(m.group(1)), m.group(2), int(m.group(3))
            value = str(a + b if sign == "+" else a - b)
        self._values[name] = value
        return value

    def resolve(self, operand: str) -> str:
        """A bare identifier reads the variable; anything else is substituted."""
        operand = operand.strip()
        if _IDENT_RE.match(operand):
            return self._values.get(operand, "")
        return self.substitute(operand)


class ConditionError(ValueError):
    pass


def evaluate_condition(cond: str, store: VariableStore) -> bool:
    """
    IF condition: TRUE, FALSE or VAR=value.

    Comparison is exact text equality after both sides are resolved. Any other
    shape raises ConditionError; the caller decides how loud to be about it.
    """
    text = cond.strip()
    upper = text.upper()
    if upper == "TRUE":
        return True
    if upper == "FALSE":
        return False
    if "=" not in text:
        raise ConditionError(f"unsupported condition '{cond}'")
    lhs, rhs = text.split("=", 1)
    if not lhs.strip():
        raise ConditionError(f"unsupported condition '{cond}'")
    return store.resolve(lhs) == store.substitute(rhs).strip()
