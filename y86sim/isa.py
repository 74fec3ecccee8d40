"""Y86-64 instruction set: registers, encodings, ALU operations and condition codes."""

from __future__ import annotations

import enum
from dataclasses import dataclass

WORD_MASK = (1 << 64) - 1
_SIGN_BIT = 1 << 63

MEM_SIZE = 1 << 13
BIG_MEM_SIZE = 1 << 16


class Register(enum.IntEnum):
    """Program register identifiers; NONE marks "no register"."""

    RAX = 0
    RCX = 1
    RDX = 2
    RBX = 3
    RSP = 4
    RBP = 5
    RSI = 6
    RDI = 7
    R8 = 8
    R9 = 9
    R10 = 10
    R11 = 11
    R12 = 12
    R13 = 13
    R14 = 14
    NONE = 0xF
    ERR = 0x10


_REG_NAMES = (
    "%rax", "%rcx", "%rdx", "%rbx", "%rsp", "%rbp", "%rsi", "%rdi",
    "%r8", "%r9", "%r10", "%r11", "%r12", "%r13", "%r14",
)
_NO_REG_NAME = "----"
_REGISTER_BY_NAME = {name: Register(i) for i, name in enumerate(_REG_NAMES)}


def find_register(name: str) -> Register:
    """Return the register called ``name``, or Register.ERR if there is none."""
    return _REGISTER_BY_NAME.get(name, Register.ERR)


def reg_name(reg_id: int) -> str:
    """Return the printed name of a register ID."""
    if 0 <= reg_id < Register.NONE:
        return _REG_NAMES[reg_id]
    return _NO_REG_NAME


def reg_valid(reg_id: int) -> bool:
    """Is the given ID a valid program register?"""
    return 0 <= reg_id < Register.NONE


class ArgType(enum.IntEnum):
    R = 0
    M = 1
    I = 2  # noqa: E741
    NO = 3


class InstrType(enum.IntEnum):
    HALT = 0
    NOP = 1
    RRMOVQ = 2
    IRMOVQ = 3
    RMMOVQ = 4
    MRMOVQ = 5
    ALU = 6
    JMP = 7
    CALL = 8
    RET = 9
    PUSHQ = 10
    POPQ = 11
    IADDQ = 12
    POP2 = 13


class AluOp(enum.IntEnum):
    ADD = 0
    SUB = 1
    AND = 2
    XOR = 3
    NONE = 4


class Cond(enum.IntEnum):
    YES = 0
    LE = 1
    L = 2
    E = 3
    NE = 4
    GE = 5
    G = 6


class Status(enum.IntEnum):
    BUB = 0
    AOK = 1
    HLT = 2
    ADR = 3
    INS = 4
    PIP = 5


def hpack(hi: int, lo: int) -> int:
    """Pack two 4-bit fields into one byte."""
    return ((hi & 0xF) << 4) | (lo & 0xF)


def hi4(byte: int) -> int:
    """High 4 bits of a byte."""
    return (byte >> 4) & 0xF


def lo4(byte: int) -> int:
    """Low 4 bits of a byte."""
    return byte & 0xF


@dataclass(frozen=True)
class Instruction:
    """Encoding information for one mnemonic or data directive.

    ``arg1hi`` / ``arg2hi`` select the high nibble for register arguments,
    or give the number of bytes for immediate arguments.
    """

    name: str
    code: int
    size: int
    arg1: ArgType = ArgType.NO
    arg1pos: int = 0
    arg1hi: int = 0
    arg2: ArgType = ArgType.NO
    arg2pos: int = 0
    arg2hi: int = 0


def _rr(name: str, code: int) -> Instruction:
    return Instruction(name, code, 2, ArgType.R, 1, 1, ArgType.R, 1, 0)


def _jump(name: str, code: int) -> Instruction:
    return Instruction(name, code, 9, ArgType.I, 1, 8)


INSTRUCTION_SET: tuple[Instruction, ...] = (
    Instruction("nop", hpack(InstrType.NOP, 0), 1),
    Instruction("halt", hpack(InstrType.HALT, 0), 1),
    _rr("rrmovq", hpack(InstrType.RRMOVQ, 0)),
    _rr("cmovle", hpack(InstrType.RRMOVQ, Cond.LE)),
    _rr("cmovl", hpack(InstrType.RRMOVQ, Cond.L)),
    _rr("cmove", hpack(InstrType.RRMOVQ, Cond.E)),
    _rr("cmovne", hpack(InstrType.RRMOVQ, Cond.NE)),
    _rr("cmovge", hpack(InstrType.RRMOVQ, Cond.GE)),
    _rr("cmovg", hpack(InstrType.RRMOVQ, Cond.G)),
    Instruction("irmovq", hpack(InstrType.IRMOVQ, 0), 10, ArgType.I, 2, 8, ArgType.R, 1, 0),
    Instruction("rmmovq", hpack(InstrType.RMMOVQ, 0), 10, ArgType.R, 1, 1, ArgType.M, 1, 0),
    Instruction("mrmovq", hpack(InstrType.MRMOVQ, 0), 10, ArgType.M, 1, 0, ArgType.R, 1, 1),
    _rr("addq", hpack(InstrType.ALU, AluOp.ADD)),
    _rr("subq", hpack(InstrType.ALU, AluOp.SUB)),
    _rr("andq", hpack(InstrType.ALU, AluOp.AND)),
    _rr("xorq", hpack(InstrType.ALU, AluOp.XOR)),
    _jump("jmp", hpack(InstrType.JMP, Cond.YES)),
    _jump("jle", hpack(InstrType.JMP, Cond.LE)),
    _jump("jl", hpack(InstrType.JMP, Cond.L)),
    _jump("je", hpack(InstrType.JMP, Cond.E)),
    _jump("jne", hpack(InstrType.JMP, Cond.NE)),
    _jump("jge", hpack(InstrType.JMP, Cond.GE)),
    _jump("jg", hpack(InstrType.JMP, Cond.G)),
    _jump("call", hpack(InstrType.CALL, 0)),
    Instruction("ret", hpack(InstrType.RET, 0), 1),
    Instruction("pushq", hpack(InstrType.PUSHQ, 0), 2, ArgType.R, 1, 1),
    Instruction("popq", hpack(InstrType.POPQ, 0), 2, ArgType.R, 1, 1),
    Instruction("iaddq", hpack(InstrType.IADDQ, 0), 10, ArgType.I, 2, 8, ArgType.R, 1, 0),
    # Gives the POP2 code a printable name; never assembled.
    Instruction("pop2", hpack(InstrType.POP2, 0), 0),
    Instruction(".byte", 0x00, 1, ArgType.I, 0, 1),
    Instruction(".word", 0x00, 2, ArgType.I, 0, 2),
    Instruction(".long", 0x00, 4, ArgType.I, 0, 4),
    Instruction(".quad", 0x00, 8, ArgType.I, 0, 8),
)

INVALID_INSTR = Instruction("XXX", 0, 0)

_INSTR_BY_NAME = {instr.name: instr for instr in INSTRUCTION_SET}


def find_instr(name: str) -> Instruction | None:
    """Look up an instruction by mnemonic."""
    return _INSTR_BY_NAME.get(name)


def iname(code: int) -> str:
    """Return the name of the first instruction with the given byte encoding."""
    return next((instr.name for instr in INSTRUCTION_SET if instr.code == code), "<bad>")


def bad_instr() -> Instruction:
    """Return the placeholder used for unknown instructions."""
    return INVALID_INSTR


_ALU_SYMBOLS = {AluOp.ADD: "+", AluOp.SUB: "-", AluOp.AND: "&", AluOp.XOR: "^"}


def op_name(op: int) -> str:
    """Return the symbol of an ALU operation, '?' if unknown."""
    return _ALU_SYMBOLS.get(op, "?")


def to_signed(value: int) -> int:
    """Interpret ``value`` as a 64-bit two's-complement word."""
    value &= WORD_MASK
    return value - (1 << 64) if value & _SIGN_BIT else value


def compute_alu(op: int, arg_a: int, arg_b: int) -> int:
    """Apply an ALU operation; subtraction computes ``arg_b - arg_a``."""
    if op == AluOp.ADD:
        val = arg_a + arg_b
    elif op == AluOp.SUB:
        val = arg_b - arg_a
    elif op == AluOp.AND:
        val = arg_a & arg_b
    elif op == AluOp.XOR:
        val = arg_a ^ arg_b
    else:
        val = 0
    return to_signed(val)


def pack_cc(zero: int, sign: int, overflow: int) -> int:
    """Pack the zero, sign and overflow flags into a condition code."""
    return (int(zero) << 2) | (int(sign) << 1) | int(overflow)


DEFAULT_CC = pack_cc(1, 0, 0)


def compute_cc(op: int, arg_a: int, arg_b: int) -> int:
    """Compute the condition code produced by an ALU operation."""
    a = to_signed(arg_a)
    b = to_signed(arg_b)
    val = compute_alu(op, a, b)
    zero = val == 0
    sign = val < 0
    if op == AluOp.ADD:
        ovf = ((a < 0) == (b < 0)) and ((val < 0) != (a < 0))
    elif op == AluOp.SUB:
        ovf = ((a > 0) == (b < 0)) and ((val < 0) != (b < 0))
    else:
        ovf = False
    return pack_cc(zero, sign, ovf)


_CC_NAMES = (
    "Z=0 S=0 O=0",
    "Z=0 S=0 O=1",
    "Z=0 S=1 O=0",
    "Z=0 S=1 O=1",
    "Z=1 S=0 O=0",
    "Z=1 S=0 O=1",
    "Z=1 S=1 O=0",
    "Z=1 S=1 O=1",
)


def cc_name(cc: int) -> str:
    """Printed form of a condition code."""
    if 0 <= cc <= 7:
        return _CC_NAMES[cc]
    return "???????????"


_STAT_NAMES = ("BUB", "AOK", "HLT", "ADR", "INS", "PIP")


def stat_name(status: int) -> str:
    """Printed form of a status code."""
    if 0 <= status <= Status.PIP:
        return _STAT_NAMES[status]
    return "Invalid Status"


def cond_holds(cc: int, cond: int) -> bool:
    """Decide whether a branch or move condition is satisfied by ``cc``."""
    zf = bool((cc >> 2) & 1)
    sf = bool((cc >> 1) & 1)
    of = bool(cc & 1)
    if cond == Cond.YES:
        return True
    if cond == Cond.LE:
        return (sf ^ of) or zf
    if cond == Cond.L:
        return sf ^ of
    if cond == Cond.E:
        return zf
    if cond == Cond.NE:
        return not zf
    if cond == Cond.GE:
        return not (sf ^ of)
    if cond == Cond.G:
        return not (sf ^ of) and not zf
    return False