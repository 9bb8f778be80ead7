import pytest

from ttl_knight.errors import ParseError
from ttl_knight.script import Op, load_script, match_loops, parse, validate

SAMPLE = """\
# LED blink test
// second comment style

10->START
LOOP 5
LED ON
WAIT 500
   LED OFF
ENDLOOP
   # indented comment
ECHO Blink complete!
"""


def test_slot_count_skips_blank_and_comment_lines():
    lines, labels = parse(SAMPLE)
    assert len(lines) == 7
    assert [ln.op for ln in lines] == [
        Op.LABEL, Op.LOOP, Op.PASS, Op.WAIT, Op.PASS, Op.ENDLOOP, Op.ECHO]


def test_source_line_numbers_are_kept():
    lines, _ = parse(SAMPLE)
    assert [ln.line_number for ln in lines] == [4, 5, 6, 7, 8, 9, 11]


def test_label_takes_its_own_noop_slot():
    lines, labels = parse(SAMPLE)
    assert labels == {"START": 0}
    assert lines[0].command == ""
    assert lines[0].original == "10->START"


def test_pass_through_is_stripped_but_original_kept():
    lines, _ = parse(SAMPLE)
    assert lines[4].command == "LED OFF"
    assert lines[4].original == "   LED OFF"
    assert lines[4].args == ("LED OFF",)


def test_labels_are_case_insensitive():
    lines, labels = parse("10->Finish\nGOTO finish\nCALL FINISH\n")
    assert labels == {"FINISH": 0}
    assert lines[1].target == "FINISH"
    assert lines[2].target == "FINISH"


def test_forward_and_backward_labels_resolve_to_same_index():
    text = "GOTO MID\n10->MID\nECHO x\nGOTO MID\n"
    lines, labels = parse(text)
    assert lines[0].target == lines[3].target == "MID"
    assert labels["MID"] == 1


def test_duplicate_label_last_definition_wins():
    _, labels = parse("10->A\nECHO one\n20->A\nECHO two\n")
    assert labels["A"] == 2


@pytest.mark.parametrize("text,op,args", [
    ("goto start", Op.GOTO, ("START",)),
    ("Wait 250", Op.WAIT, (250,)),
    ("SET COUNT = ${COUNT}+1", Op.SET, ("COUNT", "${COUNT}+1")),
    ("SET NAME=TEST", Op.SET, ("NAME", "TEST")),
    ("IF COUNT=3 GOTO FINISH", Op.IF, ("COUNT=3", "FINISH")),
    ("if true goto x", Op.IF, ("true", "X")),
    ("LOOP 3", Op.LOOP, (3,)),
    ("endloop", Op.ENDLOOP, ()),
    ("CALL SUB", Op.CALL, ("SUB",)),
    ("Return", Op.RETURN, ()),
    ("BAUD 115200", Op.BAUD, ("115200",)),
    ("ECHO Loop ${COUNT}", Op.ECHO, ("Loop ${COUNT}",)),
    ("ECHO", Op.ECHO, ("",)),
    ("STOP", Op.STOP, ()),
])
def test_keywords_are_tagged_once(text, op, args):
    (line,), _ = parse(text)
    assert line.op is op
    assert line.args == args


@pytest.mark.parametrize("text", [
    "GOTO", "WAIT abc", "WAIT -5", "LOOP", "CALL", "IF COUNT=3", "ECHOES", "10->", "STOPNOW",
    "BAUD fast",
])
def test_malformed_keyword_lines_fall_through_to_pass_through(text):
    (line,), labels = parse(text)
    assert line.op is Op.PASS
    assert line.args == (text,)
    assert labels == {}


def test_match_loops_pairs_by_nesting():
    lines, _ = parse("LOOP 2\nLOOP 3\nX\nENDLOOP\nENDLOOP\nENDLOOP\nLOOP 1\n")
    pairs, open_loops, stray = match_loops(lines)
    assert pairs == {1: 3, 0: 4}
    assert stray == [5]
    assert open_loops == [6]


def test_validate_reports_unknown_labels_with_line_numbers():
    text = "10->A\nGOTO A\nGOTO B\nIF X=1 GOTO C\nCALL A\n"
    problems = validate(parse(text))
    assert problems == [
        "line 3: unknown label 'B'",
        "line 4: unknown label 'C'",
    ]


def test_validate_clean_script():
    assert validate(parse(SAMPLE)) == []


def test_load_script_strips_bom(tmp_path):
    path = tmp_path / "s.txt"
    path.write_bytes(b"\xef\xbb\xbfLED ON\r\nSTOP\r\n")
    lines, _ = load_script(str(path))
    assert [ln.command for ln in lines] == ["LED ON", "STOP"]


def test_load_script_missing_file(tmp_path):
    with pytest.raises(ParseError):
        load_script(str(tmp_path / "nope.txt"))


def test_load_script_rejects_non_utf8(tmp_path):
    path = tmp_path / "bad.txt"
    path.write_bytes(b"LED \xff\xfe ON\n")
    with pytest.raises(ParseError):
        load_script(str(path))
