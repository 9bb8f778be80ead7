import pytest

from ttl_knight.variables import ConditionError, VariableStore, evaluate_condition


def test_counter_increments_via_set():
    store = VariableStore()
    store.set("COUNT", "0")
    for _ in range(3):
        store.set("COUNT", "${COUNT}+1")
    assert store.get("COUNT") == "3"


def test_decrement_can_go_negative():
    store = VariableStore({"N": "1"})
    store.set("N", "${N}-1")
    store.set("N", "${N}-1")
    assert store.get("N") == "-1"


def test_arithmetic_with_spaces_is_stored_verbatim():
    store = VariableStore({"N": "4"})
    assert store.set("N", "${N} + 10") == "4 + 10"
    assert store.set("M", " 1+2 ") == "3"


@pytest.mark.parametrize("expr,stored", [
    ("hello", "hello"),
    ('"TEST"', '"TEST"'),
    ("1+2+3", "1+2+3"),
    ("x1+2", "x1+2"),
    ("5*2", "5*2"),
])
def test_non_arithmetic_text_is_stored_verbatim(expr, stored):
    store = VariableStore()
    assert store.set("V", expr) == stored


def test_undefined_variable_substitutes_empty():
    store = VariableStore()
    assert store.substitute("Loop ${COUNT}") == "Loop "


def test_undefined_variable_in_arithmetic_leaves_text():
    # "${MISSING}+1" becomes "+1", which is not <int><op><int>
    store = VariableStore()
    assert store.set("X", "${MISSING}+1") == "+1"


def test_substitute_multiple_names():
    store = VariableStore({"A": "1", "B": "two"})
    assert store.substitute("${A}-${B}-${A}") == "1-two-1"


def test_variable_names_are_case_sensitive():
    store = VariableStore({"count": "1"})
    assert store.substitute("${COUNT}") == ""


@pytest.mark.parametrize("cond,expected", [
    ("TRUE", True),
    ("true", True),
    ("FALSE", False),
    ("COUNT=3", True),
    ("COUNT=4", False),
    ("COUNT = 3", True),
    ("${COUNT}=3", True),
    ("COUNT=${LIMIT}", True),
    ("MISSING=", True),
    ("MISSING=0", False),
])
def test_conditions(cond, expected):
    store = VariableStore({"COUNT": "3", "LIMIT": "3"})
    assert evaluate_condition(cond, store) is expected


def test_condition_compares_text_not_numbers():
    store = VariableStore({"COUNT": "03"})
    assert evaluate_condition("COUNT=3", store) is False


@pytest.mark.parametrize("cond", ["COUNT", "=3", "maybe"])
def test_unsupported_condition_raises(cond):
    with pytest.raises(ConditionError):
        evaluate_condition(cond, VariableStore())
