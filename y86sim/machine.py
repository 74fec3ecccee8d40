"""Instruction-level model of a Y86-64 processor."""

from __future__ import annotations

from typing import TextIO

from .isa import (
    DEFAULT_CC,
    MEM_SIZE,
    WORD_MASK,
    AluOp,
    InstrType,
    Register,
    Status,
    cc_name,
    compute_alu,
    compute_cc,
    cond_holds,
    hi4,
    lo4,
    reg_valid,
    to_signed,
)
from .memory import Memory, MemoryAccessError, RegisterFile

_NEEDS_REGIDS = frozenset({
    InstrType.RRMOVQ, InstrType.ALU, InstrType.PUSHQ, InstrType.POPQ,
    InstrType.IRMOVQ, InstrType.RMMOVQ, InstrType.MRMOVQ, InstrType.IADDQ,
})

_NEEDS_IMM = frozenset({
    InstrType.IRMOVQ, InstrType.RMMOVQ, InstrType.MRMOVQ,
    InstrType.JMP, InstrType.CALL, InstrType.IADDQ,
})

_BAD_IADDR = "Invalid instruction address\n"


class _Fault(Exception):
    """Stops execution of one instruction with a status and an optional message."""

    def __init__(self, status: Status, message: str | None = None):
        super().__init__(message)
        self.status = status
        self.message = message


def _bad_register(reg: int) -> _Fault:
    return _Fault(Status.INS, f"Invalid register ID 0x{reg:x}\n")


class State:
    """Program counter, registers, memory and condition codes."""

    def __init__(self, memlen: int = MEM_SIZE):
        self.pc = 0
        self.registers = RegisterFile()
        self.memory = Memory(memlen)
        self.cc = DEFAULT_CC

    def copy(self) -> State:
        """Return an independent copy."""
        result = State(0)
        result.pc = self.pc
        result.registers = self.registers.copy()
        result.memory = self.memory.copy()
        result.cc = self.cc
        return result

    def diff(self, other: State, out: TextIO | None = None) -> bool:
        """Report whether ``other`` differs; write each difference to ``out``."""
        found = False
        if self.pc != other.pc:
            found = True
            if out is not None:
                out.write(f"pc:\t0x{self.pc & WORD_MASK:016x}\t0x{other.pc & WORD_MASK:016x}\n")
        if self.cc != other.cc:
            found = True
            if out is not None:
                out.write(f"cc:\t{cc_name(self.cc)}\t{cc_name(other.cc)}\n")
        if self.registers.diff(other.registers, out):
            found = True
        if self.memory.diff(other.memory, out):
            found = True
        return found

    def step(self, error_file: TextIO | None = None) -> Status:
        """Execute one instruction and return the resulting status."""
        try:
            return self._execute()
        except _Fault as fault:
            if error_file is not None and fault.message is not None:
                error_file.write(f"PC = 0x{self.pc & WORD_MASK:x}, {fault.message}")
            return fault.status

    def _execute(self) -> Status:
        mem, regs = self.memory, self.registers
        try:
            byte0 = mem.get_byte(self.pc)
        except MemoryAccessError:
            raise _Fault(Status.ADR, _BAD_IADDR) from None
        ftpc = self.pc + 1
        icode, ifun = hi4(byte0), lo4(byte0)

        ok1 = True
        ra = rb = int(Register.NONE)
        if icode in _NEEDS_REGIDS:
            try:
                byte1 = mem.get_byte(ftpc)
            except MemoryAccessError:
                ok1, byte1 = False, 0
            ftpc += 1
            ra, rb = hi4(byte1), lo4(byte1)

        okc = True
        cval = 0
        if icode in _NEEDS_IMM:
            try:
                cval = mem.get_word(ftpc)
            except MemoryAccessError:
                okc = False
            ftpc += 8

        def need_regids() -> None:
            if not ok1:
                raise _Fault(Status.ADR, _BAD_IADDR)

        def need_imm(status: Status, message: str = _BAD_IADDR) -> None:
            if not okc:
                raise _Fault(status, message)

        def need_reg(reg: int) -> None:
            if not reg_valid(reg):
                raise _bad_register(reg)

        if icode == InstrType.NOP:
            self.pc = ftpc
        elif icode == InstrType.HALT:
            return Status.HLT
        elif icode == InstrType.RRMOVQ:
            need_regids()
            need_reg(ra)
            need_reg(rb)
            val = regs.get(ra)
            if cond_holds(self.cc, ifun):
                regs.set(rb, val)
            self.pc = ftpc
        elif icode == InstrType.IRMOVQ:
            need_regids()
            need_imm(Status.INS, "Invalid instruction address")
            need_reg(rb)
            regs.set(rb, cval)
            self.pc = ftpc
        elif icode == InstrType.RMMOVQ:
            need_regids()
            need_imm(Status.INS)
            need_reg(ra)
            if reg_valid(rb):
                cval = to_signed(cval + regs.get(rb))
            try:
                mem.set_word(cval, regs.get(ra))
            except MemoryAccessError:
                raise _Fault(Status.ADR, f"Invalid data address 0x{cval & WORD_MASK:x}\n") from None
            self.pc = ftpc
        elif icode == InstrType.MRMOVQ:
            need_regids()
            need_imm(Status.INS, "Invalid instruction addres\n")
            need_reg(ra)
            if reg_valid(rb):
                cval = to_signed(cval + regs.get(rb))
            try:
                val = mem.get_word(cval)
            except MemoryAccessError:
                raise _Fault(Status.ADR) from None
            regs.set(ra, val)
            self.pc = ftpc
        elif icode == InstrType.ALU:
            need_regids()
            arg_a, arg_b = regs.get(ra), regs.get(rb)
            regs.set(rb, compute_alu(ifun, arg_a, arg_b))
            self.cc = compute_cc(ifun, arg_a, arg_b)
            self.pc = ftpc
        elif icode == InstrType.JMP:
            need_regids()
            need_imm(Status.ADR)
            self.pc = cval if cond_holds(self.cc, ifun) else ftpc
        elif icode == InstrType.CALL:
            need_regids()
            need_imm(Status.ADR)
            sp = to_signed(regs.get(Register.RSP) - 8)
            regs.set(Register.RSP, sp)
            self._push_word(sp, ftpc)
            self.pc = cval
        elif icode == InstrType.RET:
            sp = regs.get(Register.RSP)
            val = self._pop_word(sp)
            regs.set(Register.RSP, to_signed(sp + 8))
            self.pc = val
        elif icode == InstrType.PUSHQ:
            need_regids()
            need_reg(ra)
            val = regs.get(ra)
            sp = to_signed(regs.get(Register.RSP) - 8)
            regs.set(Register.RSP, sp)
            self._push_word(sp, val)
            self.pc = ftpc
        elif icode == InstrType.POPQ:
            need_regids()
            need_reg(ra)
            sp = regs.get(Register.RSP)
            regs.set(Register.RSP, to_signed(sp + 8))
            regs.set(ra, self._pop_word(sp))
            self.pc = ftpc
        elif icode == InstrType.IADDQ:
            need_regids()
            need_imm(Status.INS, "Invalid instruction address")
            need_reg(rb)
            arg_b = regs.get(rb)
            regs.set(rb, to_signed(arg_b + cval))
            self.cc = compute_cc(AluOp.ADD, cval, arg_b)
            self.pc = ftpc
        else:
            raise _Fault(Status.INS, f"Invalid instruction {byte0:02x}\n")
        return Status.AOK

    def _push_word(self, address: int, value: int) -> None:
        try:
            self.memory.set_word(address, value)
        except MemoryAccessError:
            raise _Fault(Status.ADR, f"Invalid stack address 0x{address & WORD_MASK:x}\n") from None

    def _pop_word(self, address: int) -> int:
        try:
            return self.memory.get_word(address)
        except MemoryAccessError:
            raise _Fault(Status.ADR, f"Invalid stack address 0x{address & WORD_MASK:x}\n") from None


def run(state: State, max_steps: int = 10000, error_file: TextIO | None = None) -> tuple[int, Status]:
    """Step until the status is no longer AOK or ``max_steps`` is reached.

    Returns the number of steps taken and the last status.
    """
    status = Status.AOK
    steps = 0
    while steps < max_steps and status == Status.AOK:
        status = state.step(error_file)
        steps += 1
    return steps, status