"""Deferred ``[eval:...]`` evaluation of configuration documents.

Any scalar string of a configuration document may embed ``[eval:<expr>]``
markers. :func:`evaluate` walks the document depth-first, replaces each marker
with the value of its expression and repeats the walk until the document stops
changing, so that a value may reference another value which is only resolved
by a previous pass. Markers written as ``[_eval:...]`` are demoted to
``[eval:...]`` after each pass (and ``[__eval:`` to ``[_eval:``, and so on),
which lets a document delay an evaluation by one pass per underscore.

Expressions are *not* Python: they are parsed with :mod:`ast` and only a
closed set of constructs is accepted:

* literals (strings, numbers, booleans, ``None``),
* ``+ - * / // %`` and unary minus (``+`` concatenates when one side is a
  string),
* the names given by the caller (``host``, ``node``, ``site``, ``service``),
  read-only, with ``a.b`` or ``a['b']`` mapping access,
* calls to the whitelisted functions ``var``, ``env``, ``path``, ``tempdir``,
  ``logs_root``, ``strftime``, ``upper`` and ``lower``.

Anything else is reported once through the ``on_error`` callback and leaves
the marker untouched.
"""
from __future__ import annotations

import ast
import copy
import operator
import re
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from pathlib import Path

from . import paths

EVAL_OPEN = "[eval:"
DEMOTE_RE = re.compile(r"\[_(_*)eval:")
MAX_PASSES = 10
UNDEFINED_TEXT = "(undef)"

ErrorSink = Callable[[str], None]
VarSource = Callable[[object], object]


class EvaluationError(ValueError):
    """Raised when an expression cannot be evaluated."""


_BINARY_OPERATORS: dict[type[ast.operator], Callable[[object, object], object]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}


def lookup(document: object, path: Sequence[str]) -> object | None:
    """Return the value at *path* in *document*, ``None`` on any missing segment."""
    current = document
    for segment in path:
        if not isinstance(current, Mapping) or segment not in current:
            return None
        current = current[segment]
    return current


def default_functions(
    *,
    env: Mapping[str, str] | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> dict[str, Callable[..., object]]:
    """Return the whitelisted functions except ``var``."""
    environ = dict(env or {})

    def _env(name: str, default: str = "") -> str:
        return environ.get(str(name), default)

    def _path(*parts: object) -> str:
        if not parts:
            raise EvaluationError("path() expects at least one part")
        return str(Path(*(str(part) for part in parts)))

    return {
        "env": _env,
        "path": _path,
        "tempdir": lambda: str(paths.default_temp_dir()),
        "logs_root": lambda: str(paths.default_logs_root()),
        "strftime": lambda fmt: clock().strftime(str(fmt)),
        "upper": lambda value: str(value).upper(),
        "lower": lambda value: str(value).lower(),
    }


class _ExpressionEvaluator:
    """Walks a parsed expression accepting only the whitelisted constructs."""

    def __init__(self, names: Mapping[str, object], functions: Mapping[str, Callable[..., object]]) -> None:
        self._names = names
        self._functions = functions

    def run(self, source: str) -> object:
        try:
            tree = ast.parse(source.strip(), mode="eval")
        except SyntaxError as exc:
            raise EvaluationError(f"invalid expression '{source}': {exc.msg}") from exc
        return self._visit(tree.body)

    def _visit(self, node: ast.AST) -> object:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, (str, int, float, bool)) or node.value is None:
                return node.value
            raise EvaluationError(f"unsupported literal {node.value!r}")
        if isinstance(node, ast.Name):
            if node.id in self._names:
                return self._names[node.id]
            raise EvaluationError(f"unknown name '{node.id}'")
        if isinstance(node, ast.BinOp):
            return self._binary(node)
        if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
            operand = self._visit(node.operand)
            if isinstance(operand, bool) or not isinstance(operand, (int, float)):
                raise EvaluationError("unary minus expects a number")
            return -operand if isinstance(node.op, ast.USub) else operand
        if isinstance(node, ast.Attribute):
            return self._member(self._visit(node.value), node.attr)
        if isinstance(node, ast.Subscript):
            container = self._visit(node.value)
            key = self._visit(node.slice)
            if isinstance(container, Sequence) and not isinstance(container, str) and isinstance(key, int):
                try:
                    return container[key]
                except IndexError:
                    return None
            return self._member(container, key)
        if isinstance(node, ast.Call):
            return self._call(node)
        raise EvaluationError(f"unsupported construct '{type(node).__name__}'")

    def _binary(self, node: ast.BinOp) -> object:
        handler = _BINARY_OPERATORS.get(type(node.op))
        if handler is None:
            raise EvaluationError(f"unsupported operator '{type(node.op).__name__}'")
        left = self._visit(node.left)
        right = self._visit(node.right)
        if isinstance(node.op, ast.Add) and (isinstance(left, str) or isinstance(right, str)):
            return _as_text(left) + _as_text(right)
        if isinstance(left, str) or isinstance(right, str):
            raise EvaluationError(f"operator '{type(node.op).__name__}' does not apply to strings")
        try:
            return handler(left, right)
        except (TypeError, ZeroDivisionError) as exc:
            raise EvaluationError(str(exc)) from exc

    def _member(self, container: object, key: object) -> object:
        if isinstance(container, Mapping):
            try:
                return container.get(key)
            except TypeError as exc:
                raise EvaluationError(f"invalid key {key!r}") from exc
        raise EvaluationError(f"cannot read '{key}' from a {type(container).__name__}")

    def _call(self, node: ast.Call) -> object:
        if not isinstance(node.func, ast.Name) or node.func.id not in self._functions:
            target = node.func.id if isinstance(node.func, ast.Name) else type(node.func).__name__
            raise EvaluationError(f"function '{target}' is not available")
        args = [self._visit(arg) for arg in node.args]
        kwargs: dict[str, object] = {}
        for keyword in node.keywords:
            if keyword.arg is None:
                raise EvaluationError("keyword unpacking is not supported")
            kwargs[keyword.arg] = self._visit(keyword.value)
        try:
            return self._functions[node.func.id](*args, **kwargs)
        except EvaluationError:
            raise
        except (TypeError, ValueError) as exc:
            raise EvaluationError(f"{node.func.id}(): {exc}") from exc


def _as_text(value: object) -> str:
    if value is None:
        return UNDEFINED_TEXT
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def evaluate_expression(
    source: str,
    *,
    names: Mapping[str, object] | None = None,
    functions: Mapping[str, Callable[..., object]] | None = None,
) -> object:
    """Evaluate one expression with the given names and functions."""
    return _ExpressionEvaluator(names or {}, functions or default_functions()).run(source)


def _closing_bracket(value: str, index: int) -> int | None:
    depth = 1
    quote: str | None = None
    while index < len(value):
        char = value[index]
        if quote is not None:
            if char == "\\":
                index += 1
            elif char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return None


def scan_markers(value: str) -> list[tuple[int, int, str]]:
    """Return ``(start, end, expression)`` for each ``[eval:...]`` marker of *value*.

    The closing bracket is the one balancing the marker, so expressions may
    hold subscripts; brackets inside quoted strings are ignored. Empty and
    unterminated markers are left alone.
    """
    markers: list[tuple[int, int, str]] = []
    start = value.find(EVAL_OPEN)
    while start != -1:
        begin = start + len(EVAL_OPEN)
        close = _closing_bracket(value, begin)
        if close is None:
            break
        if close > begin:
            markers.append((start, close + 1, value[begin:close]))
            start = value.find(EVAL_OPEN, close + 1)
        else:
            start = value.find(EVAL_OPEN, begin)
    return markers


def _evaluate_scalar(value: str, evaluator: _ExpressionEvaluator, failures: dict[str, str]) -> object:
    markers = scan_markers(value)
    if len(markers) == 1 and markers[0][0] == 0 and markers[0][1] == len(value):
        try:
            return evaluator.run(markers[0][2])
        except EvaluationError as exc:
            failures.setdefault(value, str(exc))
            return value

    pieces: list[str] = []
    position = 0
    for start, end, source in markers:
        pieces.append(value[position:start])
        marker = value[start:end]
        try:
            pieces.append(_as_text(evaluator.run(source)))
        except EvaluationError as exc:
            failures.setdefault(marker, str(exc))
            pieces.append(marker)
        position = end
    pieces.append(value[position:])
    return DEMOTE_RE.sub(r"[\1eval:", "".join(pieces))


def _evaluate_node(value: object, evaluator: _ExpressionEvaluator, failures: dict[str, str]) -> object:
    if isinstance(value, str):
        return _evaluate_scalar(value, evaluator, failures)
    if isinstance(value, Mapping):
        return {key: _evaluate_node(item, evaluator, failures) for key, item in value.items()}
    if isinstance(value, list):
        return [_evaluate_node(item, evaluator, failures) for item in value]
    return value


def evaluate(
    document: object,
    *,
    names: Mapping[str, object] | None = None,
    self_name: str | None = None,
    var_source: VarSource | None = None,
    env: Mapping[str, str] | None = None,
    clock: Callable[[], datetime] = datetime.now,
    on_error: ErrorSink | None = None,
    max_passes: int = MAX_PASSES,
) -> object:
    """Evaluate every ``[eval:...]`` marker of *document* until a fixed point.

    Args:
        document: The configuration tree; it is never modified in place.
        names: Read-only values exposed to expressions by name.
        self_name: When given, the document being evaluated is also exposed
            under this name, as it stood at the end of the previous pass.
        var_source: Maps the previous-pass document to the tree ``var()``
            reads from; defaults to the document itself.
        env: Environment exposed through ``env()``.
        clock: Clock used by ``strftime()``.
        on_error: Receives one message per failing marker.
        max_passes: Upper bound on the number of passes.

    Returns:
        The evaluated document. A scalar made of a single marker takes the
        native type of its expression; otherwise results are interpolated as
        text.
    """
    base_functions = default_functions(env=env, clock=clock)
    failures: dict[str, str] = {}
    current = copy.deepcopy(document)
    converged = False
    for _ in range(max_passes):
        snapshot = copy.deepcopy(current)
        scope = dict(names or {})
        if self_name:
            scope[self_name] = snapshot
        source = var_source(snapshot) if var_source is not None else snapshot

        def _var(*path: object, _source: object = source) -> object:
            return copy.deepcopy(lookup(_source, [str(part) for part in path]))

        functions = dict(base_functions)
        functions["var"] = _var
        failures.clear()
        result = _evaluate_node(current, _ExpressionEvaluator(scope, functions), failures)
        if result == current:
            converged = True
            break
        current = result
    if on_error is not None:
        for marker, message in failures.items():
            on_error(f"unable to evaluate {marker}: {message}")
        if not converged:
            on_error(f"configuration evaluation did not settle after {max_passes} passes")
    return current


__all__ = [
    "EVAL_OPEN",
    "EvaluationError",
    "MAX_PASSES",
    "UNDEFINED_TEXT",
    "default_functions",
    "evaluate",
    "evaluate_expression",
    "lookup",
    "scan_markers",
]
