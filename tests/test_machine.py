import io

import pytest

from y86sim.isa import DEFAULT_CC, MEM_SIZE, AluOp, Register, Status, compute_cc, pack_cc
from y86sim.machine import State, run

MASK = (1 << 64) - 1
HALT = b"\x00"
NOP = b"\x10"
RET = b"\x90"


def quad(value):
    return (value & MASK).to_bytes(8, "little")


def irmovq(value, rb):
    return bytes([0x30, 0xF0 | rb]) + quad(value)


def rr(opcode, ra, rb):
    return bytes([opcode, (ra << 4) | rb])


def rmmovq(ra, disp, rb):
    return bytes([0x40, (ra << 4) | rb]) + quad(disp)


def mrmovq(disp, rb, ra):
    return bytes([0x50, (ra << 4) | rb]) + quad(disp)


def jump(fun, dest):
    return bytes([0x70 | fun]) + quad(dest)


def call(dest):
    return b"\x80" + quad(dest)


def pushq(ra):
    return bytes([0xA0, (ra << 4) | 0xF])


def popq(ra):
    return bytes([0xB0, (ra << 4) | 0xF])


def iaddq(value, rb):
    return bytes([0xC0, 0xF0 | rb]) + quad(value)


def make_state(code, at=0, memlen=MEM_SIZE):
    state = State(memlen)
    state.memory.contents[at:at + len(code)] = code
    return state


def test_initial_state():
    state = State()
    assert state.pc == 0
    assert state.cc == DEFAULT_CC
    assert len(state.memory) == MEM_SIZE
    assert state.registers.get(Register.RAX) == 0


def test_irmovq_then_halt():
    code = irmovq(5, Register.RAX)
    state = make_state(code + HALT)
    steps, status = run(state)
    assert (steps, status) == (2, Status.HLT)
    assert state.registers.get(Register.RAX) == 5
    assert state.pc == len(code)


def test_halt_leaves_pc():
    state = make_state(HALT)
    assert state.step() == Status.HLT
    assert state.pc == 0


def test_nop_advances_pc():
    state = make_state(NOP + HALT)
    assert state.step() == Status.AOK
    assert state.pc == len(NOP)


def test_addq():
    state = make_state(rr(0x60, Register.RAX, Register.RBX) + HALT)
    state.registers.set(Register.RAX, 3)
    state.registers.set(Register.RBX, 4)
    assert state.step() == Status.AOK
    assert state.registers.get(Register.RBX) == 7
    assert state.cc == compute_cc(AluOp.ADD, 3, 4)


def test_subq_equal_sets_zero():
    state = make_state(rr(0x61, Register.RAX, Register.RBX))
    state.registers.set(Register.RAX, 9)
    state.registers.set(Register.RBX, 9)
    state.cc = pack_cc(0, 1, 1)
    assert state.step() == Status.AOK
    assert state.registers.get(Register.RBX) == 0
    assert state.cc == pack_cc(1, 0, 0)


def test_xorq_self_clears():
    state = make_state(rr(0x63, Register.RCX, Register.RCX))
    state.registers.set(Register.RCX, 12345)
    state.step()
    assert state.registers.get(Register.RCX) == 0
    assert state.cc == pack_cc(1, 0, 0)


def test_push_pop_round_trip():
    code = pushq(Register.RAX) + popq(Register.RBX) + HALT
    state = make_state(code)
    state.registers.set(Register.RSP, 0x100)
    state.registers.set(Register.RAX, 42)
    _, status = run(state)
    assert status == Status.HLT
    assert state.registers.get(Register.RBX) == 42
    assert state.registers.get(Register.RSP) == 0x100
    assert state.memory.get_word(0x100 - 8) == 42


def test_call_and_ret():
    prologue = irmovq(0x100, Register.RSP) + call(0x20)
    state = make_state(prologue + HALT)
    state.memory.contents[0x20:0x21] = RET
    _, status = run(state)
    assert status == Status.HLT
    assert state.pc == len(prologue)
    assert state.registers.get(Register.RSP) == 0x100
    assert state.memory.get_word(0x100 - 8) == len(prologue)


def test_conditional_jumps():
    state = make_state(jump(4, 0x40))  # jne with Z=1: not taken
    assert state.step() == Status.AOK
    assert state.pc == 9
    state = make_state(jump(3, 0x40))  # je with Z=1: taken
    state.step()
    assert state.pc == 0x40


def test_conditional_moves():
    state = make_state(rr(0x21, Register.RAX, Register.RBX))  # cmovle
    state.registers.set(Register.RAX, 11)
    state.step()
    assert state.registers.get(Register.RBX) == 11
    state = make_state(rr(0x26, Register.RAX, Register.RBX))  # cmovg
    state.registers.set(Register.RAX, 11)
    state.step()
    assert state.registers.get(Register.RBX) == 0


def test_rmmovq_mrmovq_round_trip():
    code = rmmovq(Register.RAX, 8, Register.RDX) + mrmovq(8, Register.RDX, Register.RSI) + HALT
    state = make_state(code)
    state.registers.set(Register.RAX, -3)
    state.registers.set(Register.RDX, 0x200)
    _, status = run(state)
    assert status == Status.HLT
    assert state.memory.get_word(0x208) == -3
    assert state.registers.get(Register.RSI) == -3


def test_rmmovq_bad_address():
    state = make_state(rmmovq(Register.RAX, MEM_SIZE, Register.NONE))
    out = io.StringIO()
    assert state.step(out) == Status.ADR
    assert "Invalid data address" in out.getvalue()
    assert state.pc == 0


def test_mrmovq_bad_address_is_silent():
    state = make_state(mrmovq(-8, Register.NONE, Register.RAX))
    out = io.StringIO()
    assert state.step(out) == Status.ADR
    assert out.getvalue() == ""


def test_invalid_opcode():
    state = make_state(b"\xf0")
    out = io.StringIO()
    assert state.step(out) == Status.INS
    assert out.getvalue() == "PC = 0x0, Invalid instruction f0\n"


def test_pc_outside_memory():
    state = State(64)
    state.pc = 64
    out = io.StringIO()
    assert state.step(out) == Status.ADR
    assert "Invalid instruction address" in out.getvalue()


def test_invalid_register():
    state = make_state(rr(0x20, Register.NONE, Register.RAX))
    assert state.step() == Status.INS


def test_iaddq():
    state = make_state(iaddq(-5, Register.RDI))
    state.registers.set(Register.RDI, 5)
    assert state.step() == Status.AOK
    assert state.registers.get(Register.RDI) == 0
    assert state.cc == compute_cc(AluOp.ADD, -5, 5)


def test_truncated_immediate():
    state = State(32)
    state.memory.contents[30:32] = bytes([0x30, 0xF0])
    state.pc = 30
    assert state.step() == Status.INS


def test_ret_with_bad_stack():
    state = make_state(RET)
    state.registers.set(Register.RSP, -16)
    assert state.step() == Status.ADR


@pytest.mark.parametrize("limit", [1, 5, 17])
def test_run_stops_at_limit(limit):
    state = make_state(jump(0, 0))
    assert run(state, limit) == (limit, Status.AOK)


def test_copy_and_diff():
    state = make_state(irmovq(7, Register.RCX) + HALT)
    before = state.copy()
    assert not before.diff(state)
    state.step()
    assert before.registers.get(Register.RCX) == 0
    out = io.StringIO()
    assert before.diff(state, out)
    text = out.getvalue()
    assert text.startswith("pc:\t")
    assert "%rcx:\t" in text