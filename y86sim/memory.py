"""Byte-addressed memory and the register file built on top of it."""

from __future__ import annotations

import re
import sys
from collections.abc import Iterable
from typing import TextIO

from .isa import WORD_MASK, Register, reg_name, reg_valid, to_signed

BPL = 32  # bytes per line; memory is allocated in blocks of this size
REGISTER_FILE_SIZE = 128

_SPACE = r"[ \t\n\r\f\v]*"
_ADDRESS_RE = re.compile(_SPACE + r"0[xX]([0-9a-fA-F]*)" + _SPACE + r"(.?)", re.DOTALL)
_CODE_RE = re.compile(_SPACE + r"((?:[0-9a-fA-F]{2})*)")


class MemoryAccessError(IndexError):
    """An address lies outside the memory."""

    def __init__(self, address: int, width: int = 1):
        super().__init__(f"invalid address 0x{address & WORD_MASK:x} ({width} bytes)")
        self.address = address
        self.width = width


class LoadError(ValueError):
    """A .yo file could not be read into memory."""


class Memory:
    """A zero-initialised array of bytes with little-endian word access."""

    def __init__(self, length: int):
        length = -(-length // BPL) * BPL
        self.contents = bytearray(max(length, 0))

    def __len__(self) -> int:
        return len(self.contents)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Memory):
            return NotImplemented
        return self.contents == other.contents

    __hash__ = None  # type: ignore[assignment]

    def clear(self) -> None:
        """Set every byte to zero."""
        self.contents[:] = bytes(len(self.contents))

    def copy(self) -> Memory:
        """Return an independent copy."""
        result = Memory(len(self))
        result.contents[:] = self.contents
        return result

    def _word_or_zero(self, pos: int) -> int:
        try:
            return self.get_word(pos)
        except MemoryAccessError:
            return 0

    def diff(self, other: Memory, out: TextIO | None = None) -> bool:
        """Report whether ``other`` differs; write each changed word to ``out``."""
        limit = min(len(self), len(other))
        found = False
        for pos in range(0, limit, 8):
            if found and out is None:
                break
            old = self._word_or_zero(pos)
            new = other._word_or_zero(pos)
            if old != new:
                found = True
                if out is not None:
                    out.write(f"0x{pos:04x}:\t0x{old & WORD_MASK:016x}\t0x{new & WORD_MASK:016x}\n")
        return found

    def load(self, lines: Iterable[str], report_error: bool = True) -> int:
        """Load the contents of a .yo listing; return the number of bytes read.

        Raises LoadError on a malformed line or an address beyond the memory.
        With ``report_error`` the diagnostic is also written to stderr.
        """
        byte_count = 0
        for lineno, line in enumerate(lines, start=1):
            header = _ADDRESS_RE.match(line)
            if header is None:
                continue
            digits, colon = header.groups()
            if colon != ":":
                after = line[header.end():header.end() + 1]
                self._fail(
                    report_error,
                    "Error reading file. Expected colon",
                    f"Line {lineno}:{line}",
                    f"Reading '{after}' at position {header.end()}",
                )
            bytepos = int(digits, 16) if digits else 0
            code = _CODE_RE.match(line, header.end()).group(1)
            for value in bytes.fromhex(code):
                if bytepos >= len(self):
                    self._fail(
                        report_error,
                        f"Error reading file. Invalid address. 0x{bytepos:x}",
                        f"Line {lineno}:{line}",
                    )
                self.contents[bytepos] = value
                bytepos += 1
                byte_count += 1
        return byte_count

    @staticmethod
    def _fail(report_error: bool, message: str, *details: str) -> None:
        if report_error:
            for text in (message, *details):
                sys.stderr.write(text + "\n")
        raise LoadError(message)

    def get_byte(self, pos: int) -> int:
        """Read one byte."""
        if pos < 0 or pos >= len(self):
            raise MemoryAccessError(pos, 1)
        return self.contents[pos]

    def get_word(self, pos: int) -> int:
        """Read a signed 8-byte little-endian word."""
        if pos < 0 or pos + 8 > len(self):
            raise MemoryAccessError(pos, 8)
        return to_signed(int.from_bytes(self.contents[pos:pos + 8], "little"))

    def set_byte(self, pos: int, value: int) -> None:
        """Write one byte (the value is truncated to 8 bits)."""
        if pos < 0 or pos >= len(self):
            raise MemoryAccessError(pos, 1)
        self.contents[pos] = value & 0xFF

    def set_word(self, pos: int, value: int) -> None:
        """Write an 8-byte little-endian word."""
        if pos < 0 or pos + 8 > len(self):
            raise MemoryAccessError(pos, 8)
        self.contents[pos:pos + 8] = (value & WORD_MASK).to_bytes(8, "little")

    def dump(self, out: TextIO, pos: int, length: int) -> None:
        """Write the blocks covering ``length`` bytes from ``pos`` to ``out``."""
        start = pos - pos % BPL
        length += pos - start
        length = -(-length // BPL) * BPL
        length = min(length, len(self) - start)
        for block in range(start, start + length, BPL):
            out.write(f"0x{block:04x}:")
            for word_pos in range(block, block + BPL, 8):
                out.write(f" {self._word_or_zero(word_pos) & WORD_MASK:016x}")


class RegisterFile:
    """The program registers, stored as 8-byte words."""

    def __init__(self):
        self.memory = Memory(REGISTER_FILE_SIZE)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RegisterFile):
            return NotImplemented
        return self.memory == other.memory

    __hash__ = None  # type: ignore[assignment]

    def get(self, reg: int) -> int:
        """Value of a register; 0 for NONE and beyond."""
        if reg >= Register.NONE:
            return 0
        return self.memory.get_word(reg * 8)

    def set(self, reg: int, value: int) -> None:
        """Set a register; writes to NONE and beyond are ignored."""
        if reg < Register.NONE:
            self.memory.set_word(reg * 8, value)

    def copy(self) -> RegisterFile:
        """Return an independent copy."""
        result = RegisterFile()
        result.memory = self.memory.copy()
        return result

    def diff(self, other: RegisterFile, out: TextIO | None = None) -> bool:
        """Report whether ``other`` differs; write each changed register to ``out``."""
        old_mem, new_mem = self.memory, other.memory
        limit = min(len(old_mem), len(new_mem))
        found = False
        for pos in range(0, limit, 8):
            if found and out is None:
                break
            old = old_mem._word_or_zero(pos)
            new = new_mem._word_or_zero(pos)
            if old != new:
                found = True
                if out is not None:
                    out.write(
                        f"{reg_name(pos // 8)}:\t0x{old & WORD_MASK:016x}\t0x{new & WORD_MASK:016x}\n"
                    )
        return found

    def dump(self, out: TextIO) -> None:
        """Write register names on one line and their values on the next."""
        regs = [r for r in Register if reg_valid(r)]
        out.write("".join(f"   {reg_name(r)}  " for r in regs) + "\n")
        out.write("".join(f" {self.get(r) & WORD_MASK:x}" for r in regs) + "\n")