import pytest

from y86sim.assembler import (
    Assembler,
    AssemblyError,
    Token,
    TokenType,
    assemble,
    main,
    tokenize_line,
)
from y86sim.isa import MEM_SIZE, AluOp, Register, Status, compute_alu, find_instr
from y86sim.machine import State, run

NOP_HEX = f"{find_instr('nop').code:02x}"

PROGRAM = """\
    .pos 0
    irmovq stack, %rsp
    call main
    halt
main:
    irmovq $7, %rax
    irmovq $3, %rbx
    addq %rbx, %rax
    ret
    .pos 0x200
stack:
"""

MEMORY_PROGRAM = """\
    irmovq data, %rbx
    mrmovq 8(%rbx), %rax
    rmmovq %rax, 16(%rbx)
    halt
    .align 8
data:
    .quad 0x1
    .quad 0x2a
    .quad 0
"""


def _load_and_run(listing):
    state = State(MEM_SIZE)
    state.memory.load(listing.splitlines(keepends=True), False)
    steps, status = run(state)
    return state, status


def test_tokenize_line_types():
    tokens = tokenize_line("loop: irmovq $10, %rax # comment")
    assert [t.type for t in tokens] == [
        TokenType.IDENT,
        TokenType.PUNCT,
        TokenType.INSTR,
        TokenType.NUM,
        TokenType.PUNCT,
        TokenType.REG,
    ]
    assert tokens[0].sval == "loop"
    assert tokens[1].cval == ":"
    assert tokens[3].ival == 10
    assert tokens[5].sval == "%rax"


def test_tokenize_hex_equals_decimal():
    assert tokenize_line(".quad 0x10")[1].ival == tokenize_line(".quad 16")[1].ival


def test_tokenize_negative_number():
    assert tokenize_line(".quad -5")[1] == Token(TokenType.NUM, ival=-5)


def test_tokenize_prefers_longest_match():
    assert tokenize_line("jle")[0] == Token(TokenType.INSTR, sval="jle")
    assert tokenize_line("jlex")[0] == Token(TokenType.IDENT, sval="jlex")


def test_tokenize_comments_stop_scan():
    assert [t.sval for t in tokenize_line("nop // rest")] == ["nop"]
    assert [t.sval for t in tokenize_line("halt /* rest")] == ["halt"]


def test_tokenize_invalid_character():
    tokens = tokenize_line("nop @x")
    assert tokens[0].type is TokenType.INSTR
    assert tokens[-1].type is TokenType.ERR
    assert tokens[-1].sval == "@x"


def test_irmovq_listing_line():
    assert assemble("  irmovq $5, %rax\n") == "0x000: 30f00500000000000000 |   irmovq $5, %rax\n"


def test_separator_column_is_constant():
    listing = assemble(PROGRAM + "\n")
    columns = {line.index("|") for line in listing.splitlines()}
    assert len(columns) == 1


def test_output_has_one_line_per_input_line():
    listing = assemble(PROGRAM)
    assert len(listing.splitlines()) == len(PROGRAM.splitlines())


def test_symbols_recorded():
    asm = Assembler()
    asm.assemble(PROGRAM)
    assert asm.symbols["stack"] == 0x200
    assert "main" in asm.symbols


def test_program_runs_after_assembly():
    state, status = _load_and_run(assemble(PROGRAM))
    assert status == Status.HLT
    assert state.registers.get(Register.RSP) == 0x200
    assert state.registers.get(Register.RBX) == 3
    assert state.registers.get(Register.RAX) == compute_alu(AluOp.ADD, 7, 3)


def test_memory_operands_round_trip():
    asm = Assembler()
    listing = asm.assemble(MEMORY_PROGRAM)
    state, status = _load_and_run(listing)
    data = asm.symbols["data"]
    assert status == Status.HLT
    assert data % 8 == 0
    assert state.registers.get(Register.RAX) == 0x2A
    assert state.memory.get_word(data + 16) == 0x2A


def test_quad_and_byte_directives():
    listing = assemble(".quad 0x1122334455667788\n.byte 0xab\n")
    state = State(MEM_SIZE)
    state.memory.load(listing.splitlines(keepends=True), False)
    assert state.memory.get_word(0) == 0x1122334455667788
    assert state.memory.get_byte(8) == 0xAB


def test_align_rounds_address_up():
    listing = assemble(".pos 3\n.align 8\nnop\n")
    assert "0x008: " + NOP_HEX in listing


def test_large_address_uses_four_digits():
    listing = assemble(".pos 0x1000\nnop\n")
    assert any(line.startswith("0x1000:" + NOP_HEX) for line in listing.splitlines())


def test_address_limit_exceeded():
    with pytest.raises(AssemblyError) as info:
        assemble(".pos 0x10000\nnop\n")
    assert "Code address limit exceeded" in info.value.diagnostics


def test_missing_colon_fails_in_first_pass():
    with pytest.raises(AssemblyError) as info:
        assemble("foo nop\n")
    assert "Error on line 1: Missing Colon" in info.value.diagnostics
    assert info.value.output == ""


def test_undefined_label_keeps_listing():
    with pytest.raises(AssemblyError) as info:
        assemble("nop\njmp nowhere\n")
    assert "Error on line 2: Can't find label" in info.value.diagnostics
    assert "jmp nowhere" in info.value.output


def test_missing_final_newline():
    with pytest.raises(AssemblyError) as info:
        assemble("nop")
    assert "Missing end-of-line on final line" in info.value.diagnostics


def test_invalid_line():
    with pytest.raises(AssemblyError) as info:
        assemble("nop\nnop @\n")
    assert "Error on line 2: Invalid line" in info.value.diagnostics


def test_expecting_comma():
    with pytest.raises(AssemblyError) as info:
        assemble("rrmovq %rax %rbx\n")
    assert "Expecting Comma" in info.value.diagnostics


def test_expecting_register():
    with pytest.raises(AssemblyError) as info:
        assemble("pushq $5\n")
    assert "Expecting Register ID" in info.value.diagnostics
    assert "pushq $5" in info.value.output


def test_expecting_close_paren():
    with pytest.raises(AssemblyError) as info:
        assemble("mrmovq 8(%rbx, %rax\n")
    assert "Expecting ')'" in info.value.diagnostics


def test_bad_instruction():
    with pytest.raises(AssemblyError) as info:
        assemble("%rax\n")
    assert "Bad Instruction" in info.value.diagnostics


def test_verilog_output():
    listing = assemble("nop\n", vcode=True)
    assert listing.startswith("//0x000: ")
    assert f"    mem[0] = 8'h{NOP_HEX};\n" in listing


def test_verilog_banked_output():
    listing = assemble("nop\n", vcode=True, block_factor=8)
    assert f"    bank0[0] = 8'h{NOP_HEX};\n" in listing


def test_main_writes_listing(tmp_path):
    source = tmp_path / "prog.ys"
    source.write_text(PROGRAM)
    assert main([str(source)]) == 0
    assert (tmp_path / "prog.yo").read_text() == assemble(PROGRAM)


def test_main_reports_errors(tmp_path):
    source = tmp_path / "bad.ys"
    source.write_text("foo nop\n")
    assert main([str(source)]) == 1
    assert (tmp_path / "bad.yo").read_text() == ""


def test_main_usage_for_wrong_extension(capsys):
    assert main(["prog.txt"]) == 0
    assert "Usage:" in capsys.readouterr().out


def test_main_rejects_blocking_factor(capsys):
    assert main(["-V4", "prog.ys"]) == 1
    assert "Unknown blocking factor 4" in capsys.readouterr().err


def test_main_missing_input(tmp_path, capsys):
    missing = tmp_path / "absent.ys"
    assert main([str(missing)]) == 1
    assert "Can't open input file" in capsys.readouterr().err