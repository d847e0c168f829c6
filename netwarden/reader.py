"""
Instruction streams for Python plugin modules.

Derives the runtime-neutral instruction model from a module's syntax tree:

- every class (nested classes as "Outer.Inner") is a type, its functions are
  methods declared on it, other class-body statements form a "<body>" method
- module-level functions and statements belong to the "<module>" type, loose
  statements forming a "<toplevel>" method
- calls inside nested functions and lambdas count toward the enclosing method

Call targets are resolved through the module's import aliases, so
`from urllib import request as r; r.urlopen(...)` yields
`urllib.request.urlopen`. Calls through names no import bound (locals,
`self` attributes, builtins) and calls on expressions (call results,
subscripts) are unresolvable and carry no target.

Parsing is deferred until the instruction stream is iterated, so a module
whose ledger record still matches is never parsed at all.
"""

from __future__ import annotations

import ast
import logging
from pathlib import Path
from typing import Iterator

from .instructions import Instruction, MethodBody, ModuleSnapshot, OpCode, TypeDef

logger = logging.getLogger(__name__)

MODULE_TYPE = "<module>"
TOPLEVEL_METHOD = "<toplevel>"
CLASS_BODY_METHOD = "<body>"

_FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef)


def module_identity(path: Path) -> str:
    """The identity of a module file: its resolved file:// URI."""
    return path.resolve().as_uri()


def collect_imports(tree: ast.AST) -> dict[str, str]:
    """Map every name bound by an import statement to the dotted name it refers to."""
    aliases: dict[str, str] = {}
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    aliases[alias.asname] = alias.name
                else:
                    # `import a.b.c` binds `a`
                    root = alias.name.split(".", 1)[0]
                    aliases[root] = root
        elif isinstance(node, ast.ImportFrom):
            base = "." * node.level + (node.module or "")
            for alias in node.names:
                if alias.name == "*":
                    continue
                if base.endswith("."):
                    qualified = base + alias.name
                else:
                    qualified = f"{base}.{alias.name}"
                aliases[alias.asname or alias.name] = qualified
    return aliases


def _dotted_parts(node: ast.AST) -> list[str] | None:
    """Return ["a", "b", "c"] for `a.b.c`, or None for anything else."""
    parts: list[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    parts.reverse()
    return parts


class _InstructionCollector(ast.NodeVisitor):
    """
    Turns the calls and imported-name reads under a node into instructions.

    Only names bound by an import resolve to a target. Calls through locals,
    attributes of `self` or builtins keep their opcode but carry no target,
    so no rule can match a variable that happens to share a module's name.
    """

    def __init__(self, aliases: dict[str, str]):
        self.aliases = aliases
        self._found: list[tuple[int, int, Instruction]] = []

    def _resolve(self, parts: list[str]) -> str | None:
        root, rest = parts[0], parts[1:]
        if root not in self.aliases:
            return None
        return ".".join([self.aliases[root], *rest])

    def _emit(self, node: ast.expr, instruction: Instruction) -> None:
        self._found.append((node.lineno, node.col_offset, instruction))

    def collect(self, nodes: list[ast.AST]) -> tuple[Instruction, ...]:
        self._found = []
        for node in nodes:
            self.visit(node)
        found = sorted(self._found, key=lambda item: (item[0], item[1]))
        return tuple(instruction for _, _, instruction in found)

    def visit_Call(self, node: ast.Call) -> None:
        parts = _dotted_parts(node.func)
        if parts is None:
            self._emit(node, Instruction(OpCode.CALL, None, node.lineno))
            # the callee is itself an expression: `handlers[0]()`, `make()()`
            self.visit(node.func)
        else:
            target = self._resolve(parts)
            if parts[-1][:1].isupper():
                opcode = OpCode.NEWOBJ
            elif len(parts) > 1 and target is None:
                opcode = OpCode.CALLVIRT
            else:
                opcode = OpCode.CALL
            self._emit(node, Instruction(opcode, target, node.lineno))

        for arg in node.args:
            self.visit(arg)
        for keyword in node.keywords:
            self.visit(keyword)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        # reached only for the outermost attribute of a chain
        parts = _dotted_parts(node)
        if parts is None:
            self.generic_visit(node)
            return
        target = self._resolve(parts)
        if target is not None:
            self._emit(node, Instruction(OpCode.LOAD, target, node.lineno))


def _class_types(
    node: ast.ClassDef, prefix: str, collector: _InstructionCollector
) -> Iterator[TypeDef]:
    name = f"{prefix}.{node.name}" if prefix else node.name
    methods: list[MethodBody] = []
    body: list[ast.AST] = []
    nested: list[ast.ClassDef] = []

    for stmt in node.body:
        if isinstance(stmt, _FUNCTION_NODES):
            methods.append(MethodBody(stmt.name, name, collector.collect([stmt])))
        elif isinstance(stmt, ast.ClassDef):
            nested.append(stmt)
        else:
            body.append(stmt)

    if body:
        methods.append(MethodBody(CLASS_BODY_METHOD, name, collector.collect(body)))
    yield TypeDef(name, tuple(methods))

    for child in nested:
        yield from _class_types(child, name, collector)


def iter_types(source: bytes | str, filename: str = "<plugin>") -> Iterator[TypeDef]:
    """
    Yield the types of a Python module, parsing on first iteration.

    Raises SyntaxError/ValueError from inside the iteration when the source
    cannot be parsed; the scanner treats that as an unreadable module.
    """
    tree = ast.parse(source, filename=filename)
    collector = _InstructionCollector(collect_imports(tree))

    functions: list[MethodBody] = []
    toplevel: list[ast.AST] = []
    classes: list[ast.ClassDef] = []
    for stmt in tree.body:
        if isinstance(stmt, _FUNCTION_NODES):
            functions.append(MethodBody(stmt.name, MODULE_TYPE, collector.collect([stmt])))
        elif isinstance(stmt, ast.ClassDef):
            classes.append(stmt)
        else:
            toplevel.append(stmt)

    if toplevel:
        functions.append(MethodBody(TOPLEVEL_METHOD, MODULE_TYPE, collector.collect(toplevel)))
    yield TypeDef(MODULE_TYPE, tuple(functions))

    for node in classes:
        yield from _class_types(node, "", collector)


def read_module(path: Path, identity: str | None = None) -> ModuleSnapshot:
    """
    Capture a plugin module file as a snapshot.

    Args:
        path: Module source file
        identity: Identity override (defaults to the file URI)

    Returns:
        Snapshot with content_fingerprint None if the file cannot be read
    """
    if identity is None:
        identity = module_identity(path)
    try:
        content = path.read_bytes()
    except OSError as e:
        logger.warning(f"Cannot read module {path}: {e}")
        return ModuleSnapshot.capture(identity, None)
    return ModuleSnapshot.capture(identity, content, iter_types(content, str(path)))
