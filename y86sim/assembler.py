"""Two-pass assembler that turns Y86-64 assembly (.ys) into object listings (.yo)."""

from __future__ import annotations

import contextlib
import enum
import re
import sys
from collections.abc import Iterator
from dataclasses import dataclass

from .isa import (
    INSTRUCTION_SET,
    ArgType,
    Register,
    bad_instr,
    find_instr,
    find_register,
    hpack,
    reg_name,
    to_signed,
)

_PROG = "yas"

TOK_PER_LINE = 12
STRMAX = 4096
_CODE_LEN = 10

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MAX = (1 << 64) - 1


class TokenType(enum.IntEnum):
    IDENT = 0
    NUM = 1
    REG = 2
    INSTR = 3
    PUNCT = 4
    ERR = 5


@dataclass(frozen=True)
class Token:
    """One lexical item of an assembly line."""

    type: TokenType
    sval: str | None = None
    ival: int = 0
    cval: str = " "


_END = Token(TokenType.ERR)


class AssemblyError(Exception):
    """Assembly failed; carries the diagnostics and whatever listing was produced."""

    def __init__(self, diagnostics: list[str] | str, output: str = ""):
        text = diagnostics if isinstance(diagnostics, str) else "".join(diagnostics)
        super().__init__(text.rstrip("\n") or "assembly failed")
        self.diagnostics = text
        self.output = output


def _alternation(names: list[str]) -> re.Pattern[str]:
    ordered = sorted(set(names), key=len, reverse=True)
    return re.compile("|".join(re.escape(name) for name in ordered))


_INSTR_NAMES = [instr.name for instr in INSTRUCTION_SET if instr.name != "pop2"]
_INSTR_NAMES += [".pos", ".align"]
_REG_NAMES = [reg_name(r) for r in Register if r < Register.NONE]

_SKIP, _DEC, _HEX = "skip", "dec", "hex"

# Rules in priority order; the longest match wins, ties go to the earlier rule.
_RULES: tuple[tuple[object, re.Pattern[str]], ...] = (
    (_SKIP, re.compile(r"[ \t]")),
    (_SKIP, re.compile(r"\$+")),
    (TokenType.INSTR, _alternation(_INSTR_NAMES)),
    (TokenType.REG, _alternation(_REG_NAMES)),
    (_DEC, re.compile(r"-?[0-9]+")),
    (_HEX, re.compile(r"0[xX][0-9a-fA-F]+")),
    (TokenType.PUNCT, re.compile(r"[():,]")),
    (TokenType.IDENT, re.compile(r"[A-Za-z][A-Za-z0-9_]*")),
)
_COMMENT_RE = re.compile(r"#|//|/\*")
_LINE_RE = re.compile(r"([^\n\r]*)(\r*[\n\r])?")


def _decimal(text: str) -> int:
    return min(max(int(text), _INT64_MIN), _INT64_MAX)


def _hexadecimal(text: str) -> int:
    return to_signed(min(int(text[2:], 16), _UINT64_MAX))


def tokenize_line(line: str) -> list[Token]:
    """Split one source line (without its terminator) into tokens.

    Comments end the scan.  A character that starts no token yields a final
    ERR token holding the rest of the line.
    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(line):
        if _COMMENT_RE.match(line, pos):
            break
        best_kind: object = None
        best_text = ""
        for kind, pattern in _RULES:
            match = pattern.match(line, pos)
            if match and len(match.group()) > len(best_text):
                best_kind, best_text = kind, match.group()
        if best_kind is None:
            tokens.append(Token(TokenType.ERR, sval=line[pos:]))
            break
        pos += len(best_text)
        if best_kind is _SKIP:
            continue
        if best_kind is _DEC:
            tokens.append(Token(TokenType.NUM, ival=_decimal(best_text)))
        elif best_kind is _HEX:
            tokens.append(Token(TokenType.NUM, ival=_hexadecimal(best_text)))
        elif best_kind is TokenType.PUNCT:
            tokens.append(Token(TokenType.PUNCT, cval=best_text))
        else:
            tokens.append(Token(best_kind, sval=best_text))  # type: ignore[arg-type]
    return tokens


def _split_lines(text: str) -> Iterator[tuple[str, str]]:
    pos = 0
    while pos < len(text):
        match = _LINE_RE.match(text, pos)
        yield match.group(1), match.group(2) or ""
        pos = match.end()


def _int32(value: int) -> int:
    return ((value + (1 << 31)) % (1 << 32)) - (1 << 31)


def _c_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


def _c_mod(a: int, b: int) -> int:
    return a - b * _c_div(a, b)


class Assembler:
    """Assembles a complete program in two passes: symbols first, then code."""

    def __init__(self, vcode: bool = False, block_factor: int = 0):
        self.vcode = vcode
        self.block_factor = block_factor
        self._reset()

    def _reset(self) -> None:
        self.symbols: dict[str, int] = {}
        self.lineno = 1
        self.bytepos = 0
        self._pass = 1
        self._error_mode = False
        self._hit_error = False
        self._tokens: list[Token] = []
        self._tpos = 0
        self._strpos = 0
        self._code = bytearray(_CODE_LEN)
        self._bcount = 0
        self._input_line = ""
        self._diagnostics: list[str] = []
        self._out: list[str] = []

    def assemble(self, text: str) -> str:
        """Assemble ``text`` and return the object listing.

        Raises AssemblyError if any line is in error.
        """
        self._reset()
        lines = list(_split_lines(text))
        self._run_pass(lines, 1)
        if self._hit_error:
            raise AssemblyError(self._diagnostics, "")
        self._run_pass(lines, 2)
        output = "".join(self._out)
        if self._hit_error:
            raise AssemblyError(self._diagnostics, output)
        return output

    def _run_pass(self, lines: list[tuple[str, str]], number: int) -> None:
        self._pass = number
        self.lineno = 1
        self.bytepos = 0
        self._error_mode = False
        self._tokens = []
        self._strpos = 0
        for body, terminator in lines:
            if terminator:
                self._save_line(body, terminator)
            tokens = tokenize_line(body)
            bad = bool(tokens) and tokens[-1].type is TokenType.ERR
            for token in tokens[:-1] if bad else tokens:
                self._add_token(token)
            if not terminator:
                continue
            if bad:
                self._fail("Invalid line")
            else:
                self._finish_line()
            self.lineno += 1
        if self._tokens:
            self._fail("Missing end-of-line on final line\n")

    def _save_line(self, body: str, terminator: str) -> None:
        if len(body) + len(terminator) >= STRMAX:
            self._fail("Input Line too long")
        self._input_line = body.rstrip("\r\n")

    def _fail(self, message: str) -> None:
        if not self._error_mode:
            self._diagnostics.append(f"Error on line {self.lineno}: {message}\n")
            self._diagnostics.append(
                f"Line {self.lineno}, Byte 0x{self.bytepos & 0xFFFFFFFF:04x}: {self._input_line}\n"
            )
        self._error_mode = True
        self._hit_error = True

    def _start_line(self) -> None:
        self._error_mode = False
        self._tpos = 0
        self._tokens = []
        self._bcount = 0
        self._strpos = 0

    def _add_token(self, token: Token) -> None:
        if not self._tokens:
            self._start_line()
        if len(self._tokens) >= TOK_PER_LINE - 1:
            self._fail("Line too long")
            return
        if token.sval is not None:
            size = len(token.sval) + 1
            if self._strpos + size > STRMAX:
                self._fail("Line too long")
                return
            self._strpos += size
        self._tokens.append(token)

    def _tok(self, index: int) -> Token:
        return self._tokens[index] if index < len(self._tokens) else _END

    def _find_symbol(self, name: str) -> int:
        if name in self.symbols:
            return self.symbols[name]
        self._fail("Can't find label")
        return -1

    def _finish_line(self) -> None:
        saved_pos = self.bytepos
        self._tpos = 0
        if not self._tokens:
            if self._pass > 1:
                self._print_code(saved_pos)
            self._start_line()
            return
        if self._error_mode:
            self._start_line()
            return

        first = self._tok(0)
        if first.type is TokenType.IDENT:
            colon = self._tok(1)
            if colon.type is not TokenType.PUNCT or colon.cval != ":":
                self._fail("Missing Colon")
                self._start_line()
                return
            if self._pass == 1:
                self.symbols.setdefault(first.sval, self.bytepos)
            self._tpos = 2
            if len(self._tokens) == 2:
                if self._pass > 1:
                    self._print_code(saved_pos)
                self._start_line()
                return

        token = self._tok(self._tpos)
        if token.type is not TokenType.INSTR:
            self._fail("Bad Instruction")
            self._start_line()
            return

        if token.sval in (".pos", ".align"):
            self._tpos += 1
            arg = self._tok(self._tpos)
            if token.sval == ".pos":
                if arg.type is not TokenType.NUM:
                    self._fail("Invalid Address")
                    self._start_line()
                    return
                self.bytepos = _int32(arg.ival)
            else:
                align = _int32(arg.ival)
                if arg.type is not TokenType.NUM or align <= 0:
                    self._fail("Invalid Alignment")
                    self._start_line()
                    return
                self.bytepos = _int32(_c_div(self.bytepos + align - 1, align) * align)
            if self._pass > 1:
                self._print_code(self.bytepos)
            self._start_line()
            return

        instr = find_instr(token.sval)
        self._tpos += 1
        if instr is None:
            self._fail("Invalid Instruction")
            instr = bad_instr()
        self.bytepos += instr.size
        self._bcount = instr.size

        if self._pass == 1:
            self._start_line()
            return

        self._code[0] = instr.code
        self._code[1] = hpack(Register.NONE, Register.NONE)
        self._get_arg(instr.arg1, instr.arg1pos, instr.arg1hi)
        if instr.arg2 != ArgType.NO:
            comma = self._tok(self._tpos)
            if comma.type is not TokenType.PUNCT or comma.cval != ",":
                self._fail("Expecting Comma")
                self._start_line()
                return
            self._tpos += 1
            self._get_arg(instr.arg2, instr.arg2pos, instr.arg2hi)

        self._print_code(saved_pos)
        self._start_line()

    def _get_arg(self, kind: ArgType, codepos: int, hi: int) -> None:
        if kind == ArgType.R:
            self._get_reg(codepos, hi)
        elif kind == ArgType.M:
            self._get_mem(codepos)
        elif kind == ArgType.I:
            self._get_num(codepos, hi)

    def _get_reg(self, codepos: int, hi: int) -> None:
        token = self._tok(self._tpos)
        if token.type is not TokenType.REG:
            self._fail("Expecting Register ID")
            return
        rval = int(find_register(token.sval))
        byte = self._code[codepos]
        if hi:
            byte = (byte & 0x0F) | (rval << 4)
        else:
            byte = (byte & 0xF0) | rval
        self._code[codepos] = byte & 0xFF
        self._tpos += 1

    def _put_value(self, codepos: int, value: int, size: int) -> None:
        for i in range(size):
            self._code[codepos + i] = (value >> (8 * i)) & 0xFF

    def _get_num(self, codepos: int, size: int) -> None:
        token = self._tok(self._tpos)
        if token.type is TokenType.NUM:
            value = token.ival
        elif token.type is TokenType.IDENT:
            value = self._find_symbol(token.sval)
        else:
            self._fail("Number Expected")
            return
        self._put_value(codepos, value, size)
        self._tpos += 1

    def _get_mem(self, codepos: int) -> None:
        rval = int(Register.NONE)
        value = 0
        token = self._tok(self._tpos)
        if token.type is TokenType.NUM:
            value = token.ival
            self._tpos += 1
        elif token.type is TokenType.IDENT:
            value = self._find_symbol(token.sval)
            self._tpos += 1
        token = self._tok(self._tpos)
        if token.type is TokenType.PUNCT and token.cval == "(":
            self._tpos += 1
            reg = self._tok(self._tpos)
            if reg.type is not TokenType.REG:
                self._fail("Expecting Register Id")
                return
            rval = int(find_register(reg.sval))
            self._tpos += 1
            close = self._tok(self._tpos)
            if close.type is not TokenType.PUNCT:
                self._fail("Expecting ')'")
                return
            self._tpos += 1
            if close.cval != ")":
                self._fail("Expecting ')'")
                return
        self._code[codepos] = (self._code[codepos] & 0xF0) | (rval & 0xF)
        self._put_value(codepos + 1, value, 8)

    def _print_code(self, pos: int) -> None:
        has_tokens = bool(self._tokens)
        code_hex = "".join(f"{b:02x}" for b in self._code[:self._bcount])
        if pos > 0xFFF:
            if has_tokens:
                if pos > 0xFFFF:
                    self._fail("Code address limit exceeded")
                    raise AssemblyError(self._diagnostics, "".join(self._out))
                prefix = f"0x{pos & 0xFFFF:04x}:" + code_hex.ljust(22) + "| "
            else:
                prefix = " " * 29 + "| "
        elif has_tokens:
            prefix = f"0x{pos & 0xFFF:03x}: " + code_hex.ljust(21) + "| "
        else:
            prefix = " " * 28 + "| "

        if not self.vcode:
            self._out.append(f"{prefix}{self._input_line}\n")
            return
        self._out.append(f"//{prefix}{self._input_line}\n")
        if has_tokens:
            for offset, byte in enumerate(self._code[:self._bcount]):
                addr = pos + offset
                if self.block_factor:
                    bank = _c_mod(addr, self.block_factor)
                    index = _c_div(addr, self.block_factor)
                    self._out.append(f"    bank{bank}[{index}] = 8'h{byte:02x};\n")
                else:
                    self._out.append(f"    mem[{addr}] = 8'h{byte:02x};\n")


def assemble(text: str, vcode: bool = False, block_factor: int = 0) -> str:
    """Assemble ``text`` and return the listing; raises AssemblyError on errors."""
    return Assembler(vcode, block_factor).assemble(text)


def _atoi(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def _usage() -> int:
    print(f"Usage: {_PROG} [-V[n]] file.ys")
    print("   -V[n]  Generate memory initialization in Verilog format (n-way blocking)")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Assemble a .ys file into a .yo listing (or Verilog on stdout with -V)."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        return _usage()
    vcode = False
    block_factor = 0
    nextarg = 0
    if args[0].startswith("-"):
        if args[0][1:2] != "V":
            return _usage()
        vcode = True
        if len(args[0]) > 2:
            block_factor = _atoi(args[0][2:])
            if block_factor != 8:
                sys.stderr.write(f"Unknown blocking factor {block_factor}\n")
                return 1
        nextarg = 1
    if nextarg >= len(args):
        return _usage()
    name = args[nextarg]
    if not name.endswith(".ys"):
        return _usage()
    root = name[:-3]
    if len(root) > 500:
        sys.stderr.write("File name too long\n")
        return 1

    try:
        with open(name, encoding="latin-1", newline="") as infile:
            text = infile.read()
    except OSError:
        sys.stderr.write(f"Can't open input file '{name}'\n")
        return 1

    if vcode:
        target = contextlib.nullcontext(sys.stdout)
    else:
        outname = root + ".yo"
        try:
            target = open(outname, "w", encoding="latin-1", newline="")
        except OSError:
            sys.stderr.write(f"Can't open output file '{outname}'\n")
            return 1

    with target as out:
        try:
            out.write(assemble(text, vcode, block_factor))
        except AssemblyError as error:
            sys.stderr.write(error.diagnostics)
            out.write(error.output)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())