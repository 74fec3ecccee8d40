# y86sim

Tools for the Y86-64 teaching architecture:

- `yas`: an assembler that turns `.ys` assembly source into `.yo` object
  listings, or into Verilog memory initialisation with `-V`.
- `yis`: an instruction-set simulator that runs a `.yo` file and reports the
  changes it made to registers and memory.
- A library with the ISA model (registers, instruction table, ALU, condition
  codes), byte-addressed memory, a machine state you can step, and a code
  generator that turns HCL control-logic expressions into C functions.

## Installation

```
pip install .
```

## Command line

Assemble a program. This writes `prog.yo` next to `prog.ys`:

```
yas prog.ys
```

Print Verilog memory initialisation to standard output instead. `-V8`
writes it for 8-way banked memory; 8 is the only blocking factor accepted:

```
yas -V prog.ys
yas -V8 prog.ys
```

If any line is in error, `yas` writes the diagnostics to standard error and
exits with status 1.

Run the object file. The optional second argument is a step limit, which
defaults to 10000:

```
yis prog.yo
yis prog.yo 500
```

`yis` prints how many steps ran, the final PC, the status and the condition
codes. It then lists every register and every memory word that changed.

## Library use

```python
import io
from y86sim.assembler import assemble
from y86sim.isa import MEM_SIZE
from y86sim.machine import State, run

listing = assemble("""
    irmovq $5, %rax
    irmovq $7, %rbx
    addq %rbx, %rax
    halt
""")

state = State(MEM_SIZE)
state.memory.load(io.StringIO(listing).readlines(), True)
steps, status = run(state, 100, None)
```

Modules:

- `y86sim.isa`: `find_instr`, `iname`, `find_register`, `reg_name`,
  `compute_alu`, `compute_cc`, `cond_holds`, `cc_name`, `stat_name`, and the
  `Register`, `InstrType`, `AluOp`, `Cond` and `Status` enums.
- `y86sim.memory`: `Memory` and `RegisterFile`. Their `diff` methods write the
  differences between two snapshots. `Memory.load` reads a `.yo` listing and
  raises `LoadError` on a malformed line. Out-of-range accesses raise
  `MemoryAccessError`.
- `y86sim.machine`: `State`, whose `step` executes one instruction and returns
  a `Status`, and `run`, which steps until the machine stops or reaches the
  step limit.
- `y86sim.assembler`: `assemble`, `Assembler`, `tokenize_line`, and
  `AssemblyError`, which carries the diagnostics and any partial listing.
- `y86sim.outgen.OutputGenerator`: writes tokens and wraps lines at a column
  limit.
- `y86sim.hcl.CodeGenerator`: builds HCL expression trees, type-checks them
  (raising `HclError`), and emits a C function `gen_<name>()` for each
  definition.
- `y86sim.examples`: `sum_list`, `rsum_list` and `copy_block`, the reference
  functions for the Y86-64 programming exercises.

## What it does not do

There is no parser for HCL files and no command that converts them. You
drive `CodeGenerator` from Python by calling its `make_*`, `add_arg` and
`gen_funct` methods. The package has no pipelined processor simulators and no
graphical interface.

## Running the tests

```
pip install .[test]
pytest
```