"""Tests for the deferred ``[eval:...]`` evaluation."""
from __future__ import annotations

from datetime import datetime

import pytest

from ttp.evaluation import UNDEFINED_TEXT, EvaluationError, evaluate, evaluate_expression, lookup, scan_markers


def _clock() -> datetime:
    return datetime(2024, 1, 2, 3, 4, 5)


def test_values_reference_each_other_until_fixed_point() -> None:
    """A value resolved by one pass feeds the next one."""
    document = {
        "root": "[eval:'/srv']",
        "logs": "[eval:path(var('root'), 'logs')]",
        "daily": "[eval:path(var('logs'), strftime('%y%m%d'))]",
    }
    result = evaluate(document, clock=_clock)

    assert result == {"root": "/srv", "logs": "/srv/logs", "daily": "/srv/logs/240102"}
    assert document["root"] == "[eval:'/srv']"


def test_whole_marker_keeps_native_type() -> None:
    """A scalar made of one marker takes the expression type."""
    result = evaluate({"port": "[eval:14000 + 2]", "flag": "[eval:True]", "label": "port [eval:14000 + 2]"})
    assert result == {"port": 14002, "flag": True, "label": "port 14002"}


def test_demoted_markers_wait_one_pass() -> None:
    """``[_eval:`` becomes ``[eval:`` after a pass and is evaluated on the next one."""
    seen: list[str] = []
    result = evaluate(
        {"value": "x[_eval:'a' + 'b']", "nested": ["[__eval:upper('z')]"]},
        on_error=seen.append,
    )
    assert result == {"value": "xab", "nested": ["Z"]}
    assert seen == []


def test_unsupported_construct_keeps_marker_and_reports() -> None:
    """Forbidden constructs are reported once and left untouched."""
    errors: list[str] = []
    document = {"a": "[eval:__import__('os').getcwd()]", "b": "kept"}
    result = evaluate(document, on_error=errors.append)

    assert result["a"] == document["a"]
    assert len(errors) == 1
    assert "__import__" in errors[0]


def test_undefined_values_are_rendered_in_concatenations() -> None:
    """Missing ``var()`` paths read as ``(undef)`` inside text."""
    result = evaluate({"text": "dir=[eval:var('missing', 'key')]", "raw": "[eval:var('missing')]"})
    assert result == {"text": f"dir={UNDEFINED_TEXT}", "raw": None}


def test_names_and_member_access() -> None:
    """Caller names are readable with attribute and item access."""
    names = {"host": "NODE1", "site": {"toops": {"logsDir": "/var/log"}, "list": ["a", "b"]}}
    assert evaluate_expression("site.toops.logsDir", names=names) == "/var/log"
    assert evaluate_expression("site['list'][1]", names=names) == "b"
    assert evaluate_expression("site['list'][5]", names=names) is None
    assert evaluate_expression("lower(host) + '.example'", names=names) == "node1.example"


def test_self_name_exposes_previous_pass() -> None:
    """The evaluated document is readable under its own name."""
    result = evaluate({"a": "1", "b": "[eval:node.a + '2']"}, self_name="node")
    assert result == {"a": "1", "b": "12"}


def test_env_function_with_default() -> None:
    """``env()`` reads the given environment only."""
    result = evaluate(
        {"a": "[eval:env('HOME_DIR')]", "b": "[eval:env('NOPE', 'fallback')]"},
        env={"HOME_DIR": "/home/x"},
    )
    assert result == {"a": "/home/x", "b": "fallback"}


def test_evaluation_errors() -> None:
    """Invalid expressions raise ``EvaluationError``."""
    with pytest.raises(EvaluationError):
        evaluate_expression("1 +")
    with pytest.raises(EvaluationError):
        evaluate_expression("unknown")
    with pytest.raises(EvaluationError):
        evaluate_expression("open('x')")
    with pytest.raises(EvaluationError):
        evaluate_expression("'a' * 3")
    with pytest.raises(EvaluationError):
        evaluate_expression("1 / 0")
    with pytest.raises(EvaluationError):
        evaluate_expression("1 ** 2")


def test_non_settling_document_is_reported() -> None:
    """A self-growing value stops after the pass limit with an error."""
    errors: list[str] = []
    evaluate({"a": "[eval:node.a + 'x']"}, self_name="node", on_error=errors.append, max_passes=3)
    assert errors == ["configuration evaluation did not settle after 3 passes"]


def test_lookup() -> None:
    """``lookup`` returns ``None`` for any missing segment."""
    document = {"a": {"b": {"c": 1}}, "s": "text"}
    assert lookup(document, ["a", "b", "c"]) == 1
    assert lookup(document, ["a", "x"]) is None
    assert lookup(document, ["s", "x"]) is None
    assert lookup(document, []) == document


def test_markers_may_hold_subscripts() -> None:
    """A marker ends on its balancing bracket, so item access works inside it."""
    errors: list[str] = []
    document = {
        "a": {"b": "x", "list": ["p", "q"]},
        "c": "[eval:var('a')['b']]",
        "d": "item=[eval:var('a')['list'][1]] end",
        "e": "[eval:'[' + upper(']')]",
    }
    result = evaluate(document, on_error=errors.append)

    assert errors == []
    assert result["c"] == "x"
    assert result["d"] == "item=q end"
    assert result["e"] == "[]"


def test_scan_markers() -> None:
    """Unterminated and empty markers are not markers."""
    assert scan_markers("a[eval:x['k']]b[eval:1]") == [(1, 14, "x['k']"), (15, 23, "1")]
    assert scan_markers("[eval:x['k'") == []
    assert scan_markers("[eval:] [eval:2]") == [(8, 16, "2")]


def test_evaluation_is_idempotent() -> None:
    """A document without markers comes back unchanged."""
    document = {"a": "plain [text]", "b": [1, 2.5, None, True], "c": {"d": "[_x]"}}
    errors: list[str] = []
    result = evaluate(document, on_error=errors.append)

    assert result == document
    assert evaluate(result) == result
    assert errors == []
