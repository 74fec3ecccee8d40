"""Parse-tree nodes for HCL expressions and generation of C code from them."""

from __future__ import annotations

import enum
import re
import sys
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Optional, TextIO

from .outgen import OutputGenerator

SYM_LIM = 100
MAXERRLEN = 80

_MAX_COLUMN = 75
_FIRST_INDENT = 4
_OTHER_INDENTS = 2


class NodeType(enum.IntEnum):
    QUOTE = 0
    VAR = 1
    NUM = 2
    AND = 3
    OR = 4
    NOT = 5
    COMP = 6
    ELE = 7
    CASE = 8


class HclError(Exception):
    """An HCL description is malformed or inconsistent."""


@dataclass(eq=False)
class Node:
    """A node of an expression tree; ``next`` links nodes into a list."""

    type: NodeType
    isbool: bool
    sval: str
    arg1: Optional[Node] = None
    arg2: Optional[Node] = None
    ref: int = 0
    next: Optional[Node] = None

    def chain(self) -> Iterator[Node]:
        """Iterate over this node and the nodes linked after it."""
        node: Optional[Node] = self
        while node is not None:
            yield node
            node = node.next


def concat(n1: Optional[Node], n2: Optional[Node]) -> Optional[Node]:
    """Append list ``n2`` to the end of list ``n1`` and return the head."""
    if n1 is None:
        return n2
    tail = n1
    while tail.next is not None:
        tail = tail.next
    tail.next = n2
    return n1


def _atoll(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


class _ExprBuffer:
    """Fixed-position text buffer that mirrors the truncated error display."""

    def __init__(self) -> None:
        self.chars: list[str] = []
        self.length = 0

    def put(self, text: str, advance: int | None = None) -> None:
        end = self.length + len(text)
        if len(self.chars) < end + 1:
            self.chars.extend("\0" * (end + 1 - len(self.chars)))
        self.chars[self.length:end] = list(text)
        self.chars[end] = "\0"
        self.length += len(text) if advance is None else advance

    def text(self) -> str:
        return "".join(self.chars).split("\0", 1)[0]


class CodeGenerator:
    """Builds checked HCL expression trees and emits C functions for them."""

    def __init__(self, out: TextIO | None = None, simname: str = ""):
        self.out = out if out is not None else sys.stdout
        self.simname = simname
        self._symbols: list[tuple[Node, Node]] = []
        if simname:
            self.out.write(f'char simname[] = "Y86-64 Processor: {simname}";\n')
        else:
            self.out.write('char simname[] = "Y86-64 Processor";\n')
        self.gen = OutputGenerator(self.out, _MAX_COLUMN, _FIRST_INDENT, _OTHER_INDENTS)

    # Symbol table

    def _add_symbol(self, name: Node, value: Node) -> None:
        if len(self._symbols) >= SYM_LIM:
            raise HclError("Symbol table limit exceeded")
        self._symbols.append((name, value))

    def _find_symbol(self, name: str) -> Node:
        for key, value in self._symbols:
            if key.sval == name:
                key.ref += 1
                return value
        raise HclError(f"Symbol {name} not found")

    # Node construction

    def make_quote(self, qstring: str) -> Node:
        """Make a node from a quoted string, dropping the surrounding quotes."""
        return Node(NodeType.QUOTE, False, qstring[1:-1])

    def make_var(self, name: str) -> Node:
        """Make a variable node, assumed integer until marked Boolean."""
        return Node(NodeType.VAR, False, name)

    def make_num(self, name: str) -> Node:
        """Make a numeric literal node."""
        return Node(NodeType.NUM, False, name)

    def set_bool(self, node: Optional[Node]) -> None:
        """Mark a node as Boolean."""
        if node is None:
            raise HclError("Null node encountered")
        node.isbool = True

    def _check_arg(self, arg: Optional[Node], wantbool: bool) -> None:
        if arg is None:
            raise HclError("Null node encountered")
        if arg.type == NodeType.VAR:
            value = self._find_symbol(arg.sval)
            if bool(wantbool) != bool(value.isbool):
                kind = "Boolean" if wantbool else "integer"
                raise HclError(f"Variable '{arg.sval}' not {kind}")
            return
        if arg.type == NodeType.NUM:
            if wantbool and arg.sval not in ("0", "1"):
                raise HclError(f"Value '{arg.sval}' not Boolean")
            return
        if wantbool and not arg.isbool:
            raise HclError(f"Non Boolean argument '{self.show_expr(arg)}'")
        if not wantbool and arg.isbool:
            raise HclError(f"Non integer argument '{self.show_expr(arg)}'")

    def make_not(self, arg: Node) -> Node:
        self._check_arg(arg, True)
        return Node(NodeType.NOT, True, "!", arg)

    def make_and(self, arg1: Node, arg2: Node) -> Node:
        self._check_arg(arg1, True)
        self._check_arg(arg2, True)
        return Node(NodeType.AND, True, "&", arg1, arg2)

    def make_or(self, arg1: Node, arg2: Node) -> Node:
        self._check_arg(arg1, True)
        self._check_arg(arg2, True)
        return Node(NodeType.OR, True, "|", arg1, arg2)

    def make_comp(self, op: Node, arg1: Node, arg2: Node) -> Node:
        """Comparison; the operator text is taken from ``op``."""
        self._check_arg(arg1, False)
        self._check_arg(arg2, False)
        return Node(NodeType.COMP, True, op.sval, arg1, arg2)

    def make_ele(self, arg1: Node, arg2: Node) -> Node:
        """Set membership test of ``arg1`` in the list ``arg2``."""
        self._check_arg(arg1, False)
        for ele in arg1.chain():
            self._check_arg(ele, False)
        return Node(NodeType.ELE, True, "in", arg1, arg2)

    def make_case(self, arg1: Node, arg2: Node) -> Node:
        """One ``condition : value`` case; cases are linked with concat."""
        self._check_arg(arg1, True)
        self._check_arg(arg2, False)
        return Node(NodeType.CASE, False, ":", arg1, arg2)

    def insert_code(self, qstring: Optional[Node]) -> None:
        """Copy quoted code straight to the output."""
        if qstring is None:
            raise HclError("Null node")
        self.out.write(qstring.sval + "\n")

    def add_arg(self, var: Optional[Node], qstring: Optional[Node], isbool: bool) -> None:
        """Declare ``var`` as standing for the C expression in ``qstring``."""
        if var is None or qstring is None:
            raise HclError("Null node")
        self._add_symbol(var, qstring)
        if isbool:
            self.set_bool(var)
            self.set_bool(qstring)

    # Display for diagnostics

    def show_expr(self, expr: Node) -> str:
        """Render an expression for an error message, truncated near 80 characters."""
        buf = _ExprBuffer()
        self._show(expr, buf)
        if buf.length >= MAXERRLEN:
            buf.put("...")
        return buf.text()

    def _show(self, expr: Node, buf: _ExprBuffer) -> None:
        kind = expr.type
        if kind == NodeType.QUOTE:
            if len(expr.sval) + 2 + buf.length < MAXERRLEN:
                buf.put(f"'{expr.sval}'")
        elif kind in (NodeType.VAR, NodeType.NUM):
            if len(expr.sval) + buf.length < MAXERRLEN:
                buf.put(expr.sval)
        elif kind in (NodeType.AND, NodeType.OR, NodeType.COMP):
            if kind == NodeType.COMP:
                middle, advance = f" {expr.sval} ", 4
            else:
                middle = " & " if kind == NodeType.AND else " | "
                advance = 3
            if buf.length < MAXERRLEN:
                buf.put("(")
                self._show(expr.arg1, buf)
                buf.put(middle, advance)
            if buf.length < MAXERRLEN:
                self._show(expr.arg2, buf)
                buf.put(")")
        elif kind == NodeType.NOT:
            if buf.length < MAXERRLEN:
                buf.put("!")
                self._show(expr.arg1, buf)
        elif kind == NodeType.ELE:
            if buf.length < MAXERRLEN:
                buf.put("(")
                self._show(expr.arg1, buf)
                buf.put(" in {")
            if expr.arg2 is not None:
                for ele in expr.arg2.chain():
                    if buf.length < MAXERRLEN:
                        self._show(ele, buf)
                        if ele.next is not None:
                            buf.put(", ")
            if buf.length < MAXERRLEN:
                buf.put("})")
        elif kind == NodeType.CASE:
            if buf.length < MAXERRLEN:
                buf.put("[ ")
            ele: Optional[Node] = expr
            while buf.length < MAXERRLEN and ele is not None:
                self._show(ele.arg1, buf)
                buf.put(" : ")
                self._show(ele.arg2, buf)
                ele = ele.next
            if buf.length < MAXERRLEN:
                buf.put(" ]")
        elif buf.length < MAXERRLEN:
            buf.put("??")

    # Code generation

    def _gen_expr(self, expr: Node) -> None:
        gen = self.gen
        kind = expr.type
        if kind == NodeType.QUOTE:
            raise HclError("Unexpected quoted string")
        if kind == NodeType.VAR:
            gen.print(f"({self._find_symbol(expr.sval).sval})")
        elif kind == NodeType.NUM:
            # Literals bypass the column accounting.
            self.out.write(expr.sval)
        elif kind in (NodeType.AND, NodeType.OR, NodeType.COMP):
            if kind == NodeType.COMP:
                middle = f" {expr.sval} "
            else:
                middle = " & " if kind == NodeType.AND else " | "
            gen.print("(")
            gen.upindent()
            self._gen_expr(expr.arg1)
            gen.print(middle)
            self._gen_expr(expr.arg2)
            gen.print(")")
            gen.downindent()
        elif kind == NodeType.NOT:
            gen.print("!")
            self._gen_expr(expr.arg1)
        elif kind == NodeType.ELE:
            gen.print("(")
            gen.upindent()
            if expr.arg2 is not None:
                for ele in expr.arg2.chain():
                    self._gen_expr(expr.arg1)
                    gen.print(" == ")
                    self._gen_expr(ele)
                    if ele.next is not None:
                        gen.print(" || ")
            gen.print(")")
            gen.downindent()
        elif kind == NodeType.CASE:
            gen.print("(")
            gen.upindent()
            done = False
            for ele in expr.chain():
                if ele.arg1.type == NodeType.NUM and _atoll(ele.arg1.sval) == 1:
                    self._gen_expr(ele.arg2)
                    done = True
                    break
                self._gen_expr(ele.arg1)
                gen.print(" ? ")
                self._gen_expr(ele.arg2)
                gen.print(" : ")
            if not done:
                gen.print("0")
            gen.print(")")
            gen.downindent()
        else:
            raise HclError("Unknown node type")

    def gen_funct(self, var: Optional[Node], expr: Optional[Node], isbool: bool) -> None:
        """Emit a C function ``gen_<var>`` returning the value of ``expr``."""
        if var is None or expr is None:
            raise HclError("Null node")
        self._check_arg(expr, isbool)
        gen = self.gen
        gen.print(f"long long gen_{var.sval}()")
        gen.terminate()
        gen.print("{")
        gen.terminate()
        gen.print("    return ")
        self._gen_expr(expr)
        gen.print(";")
        gen.terminate()
        gen.print("}")
        gen.terminate()
        gen.terminate()

    def finish(self, check_ref: bool) -> list[str]:
        """Warn about declared arguments that were never used; return their names."""
        if not check_ref:
            return []
        unused = [name.sval for name, _ in self._symbols if not name.ref]
        for name in unused:
            sys.stderr.write(f"Warning, argument '{name}' not referenced\n")
        return unused