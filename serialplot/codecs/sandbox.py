# serialplot/codecs/sandbox.py
"""
Restricted evaluator for user-supplied parse functions.

User code is parsed to an AST and checked against an allow-list before it is
compiled; it then runs with a reduced builtins table and only the `math` and
`struct` modules in scope. No imports, attribute access only to the
public methods in ALLOWED_ATTRS, no introspection builtins, no I/O.

There is no time limit: a parser that loops forever blocks the thread that
calls it (the compile-time probe included).

Two source forms are accepted:

  * a function body using the argument `data` (bytes) and `return`;
  * a module defining `def parse(data): ...` (helpers allowed).
"""
from __future__ import annotations

import ast
import builtins
import math
import struct
import textwrap
from typing import Any, Callable, Dict

ENTRY_POINT = "parse"
ARG_NAME = "data"
FILENAME = "<user-parser>"

_SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "bytes", "bytearray", "chr", "dict", "divmod",
    "enumerate", "filter", "float", "int", "isinstance", "len", "list", "map",
    "max", "min", "ord", "pow", "range", "reversed", "round", "set", "slice",
    "sorted", "str", "sum", "tuple", "zip",
    "ArithmeticError", "Exception", "IndexError", "KeyError", "TypeError",
    "ValueError", "ZeroDivisionError", "UnicodeDecodeError",
    "True", "False", "None",
)

SAFE_BUILTINS: Dict[str, Any] = {
    name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES if hasattr(builtins, name)
}

SAFE_MODULES: Dict[str, Any] = {"math": math, "struct": struct}

_FORBIDDEN_NODES = (
    ast.Import,
    ast.ImportFrom,
    ast.Global,
    ast.Nonlocal,
    ast.ClassDef,
    ast.AsyncFunctionDef,
    ast.Await,
    ast.AsyncFor,
    ast.AsyncWith,
    ast.With,
    ast.Yield,
    ast.YieldFrom,
)

_FORBIDDEN_NAMES = frozenset({
    "eval", "exec", "compile", "open", "globals", "locals", "vars", "dir",
    "getattr", "setattr", "delattr", "hasattr", "input", "breakpoint", "help",
    "type", "object", "super", "memoryview", "exit", "quit", "print",
})

_FORBIDDEN_ATTRS = frozenset({"format", "format_map", "mro"})

# Attribute access is limited to the public methods of the value types a parser
# works with and the names exported by the modules in SAFE_MODULES. Frame,
# code and generator internals (gi_frame, f_globals, ...) are never reachable.
_ATTR_SOURCES = (bytes, bytearray, str, int, float, list, tuple, dict, set, struct.Struct, math, struct)

ALLOWED_ATTRS = frozenset(
    name
    for src in _ATTR_SOURCES
    for name in dir(src)
    if not name.startswith("_") and name not in _FORBIDDEN_ATTRS
) | {"args"}


class SandboxError(Exception):
    """User code was rejected before execution."""


class _Validator(ast.NodeVisitor):
    def generic_visit(self, node: ast.AST) -> None:
        if isinstance(node, _FORBIDDEN_NODES):
            raise SandboxError(f"{type(node).__name__} is not allowed (line {getattr(node, 'lineno', '?')})")
        super().generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("_") or node.id in _FORBIDDEN_NAMES:
            raise SandboxError(f"name '{node.id}' is not allowed (line {node.lineno})")
        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr not in ALLOWED_ATTRS:
            raise SandboxError(f"attribute '{node.attr}' is not allowed (line {node.lineno})")
        self.generic_visit(node)

    def visit_Constant(self, node: ast.Constant) -> None:
        v = node.value
        if isinstance(v, (str, bytes)):
            marker = "__" if isinstance(v, str) else b"__"
            if v.startswith(marker) and v.endswith(marker):
                raise SandboxError(f"dunder string {v!r} is not allowed (line {node.lineno})")
        self.generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        if node.name.startswith("_"):
            raise SandboxError(f"function name '{node.name}' is not allowed (line {node.lineno})")
        if node.decorator_list:
            raise SandboxError(f"decorators are not allowed (line {node.lineno})")
        self.generic_visit(node)

    def visit_arg(self, node: ast.arg) -> None:
        if node.arg.startswith("_"):
            raise SandboxError(f"argument name '{node.arg}' is not allowed")
        self.generic_visit(node)


def _defines_entry_point(tree: ast.Module) -> bool:
    return any(isinstance(n, ast.FunctionDef) and n.name == ENTRY_POINT for n in tree.body)


def _parse(source: str) -> ast.Module:
    try:
        tree = ast.parse(source, filename=FILENAME, mode="exec")
    except SyntaxError as e:
        raise SandboxError(f"syntax error: {e.msg} (line {e.lineno})") from None

    if _defines_entry_point(tree):
        return tree

    body = textwrap.indent(source, "    ")
    wrapped = f"def {ENTRY_POINT}({ARG_NAME}):\n{body}\n"
    try:
        return ast.parse(wrapped, filename=FILENAME, mode="exec")
    except SyntaxError as e:
        line = (e.lineno - 1) if e.lineno else "?"
        raise SandboxError(f"syntax error: {e.msg} (line {line})") from None


def compile_restricted(source: str) -> Callable[[bytes], Any]:
    """Validate and compile user code; returns the `parse(data)` callable."""
    if not isinstance(source, str) or not source.strip():
        raise SandboxError("parser source is empty")

    source = textwrap.dedent(source).strip("\n")
    tree = _parse(source)
    _Validator().visit(tree)

    try:
        code = compile(tree, FILENAME, "exec")
    except SyntaxError as e:
        raise SandboxError(f"syntax error: {e.msg}") from None

    namespace: Dict[str, Any] = {"__builtins__": dict(SAFE_BUILTINS)}
    namespace.update(SAFE_MODULES)
    exec(code, namespace)

    fn = namespace.get(ENTRY_POINT)
    if not callable(fn):
        raise SandboxError(f"parser does not define '{ENTRY_POINT}(data)'")
    return fn
