"""Command-line instruction set simulator for Y86-64 object files."""

from __future__ import annotations

import re
import sys

from .isa import MEM_SIZE, WORD_MASK, cc_name, stat_name
from .machine import State, run
from .memory import LoadError

_PROG = "yis"


def _atoi(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def main(argv: list[str] | None = None) -> int:
    """Load a .yo file, run it and report what changed."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not 1 <= len(args) <= 2:
        print(f"Usage: {_PROG} code_file [max_steps]")
        return 0

    state = State(MEM_SIZE)
    saved_regs = state.registers.copy()

    try:
        code_file = open(args[0], encoding="utf-8", errors="replace")
    except OSError:
        sys.stderr.write(f"Can't open code file '{args[0]}'\n")
        return 1

    with code_file:
        try:
            loaded = state.memory.load(code_file, True)
        except LoadError:
            loaded = 0
    if not loaded:
        print("Exiting")
        return 1

    saved_mem = state.memory.copy()
    max_steps = _atoi(args[1]) if len(args) > 1 else 10000

    out = sys.stdout
    steps, status = run(state, max_steps, out)

    out.write(
        f"Stopped in {steps} steps at PC = 0x{state.pc & WORD_MASK:x}.  "
        f"Status '{stat_name(status)}', CC {cc_name(state.cc)}\n"
    )
    out.write("Changes to registers:\n")
    saved_regs.diff(state.registers, out)
    out.write("\nChanges to memory:\n")
    saved_mem.diff(state.memory, out)
    return 0


if __name__ == "__main__":
    sys.exit(main())