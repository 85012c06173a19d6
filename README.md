# sysycc

The back end of a compiler for SysY, a small C-like teaching language.
It takes a program held as an LLVM-style intermediate representation
(IR), prints that IR as text, lowers it to ARM machine code with virtual
registers, allocates physical registers by linear scan, and prints ARM
assembly.

The package uses only the standard library.

## Modules

- `sysycc.typesys`: the types `IntType`, `VoidType`, `FunctionType`,
  `PointerType` and `ArrayType`, all derived from `Type` and
  classified by `TypeKind`. Sizes are in bits. Shared instances are
  `INT_TYPE` (`i32`), `BOOL_TYPE` (`i1`) and `VOID_TYPE`.
- `sysycc.symbols`: `ConstantSymbolEntry`, `IdentifierSymbolEntry` (with a
  `Scope` of `GLOBAL`, `PARAM` or `LOCAL`) and `TemporarySymbolEntry`;
  nested `SymbolTable` scopes with `install`, `lookup` and
  `lookup_current`; and `next_label()`, the counter that numbers
  temporaries and blocks.
- `sysycc.operand`: `Operand`, an IR value linked to the instruction that
  defines it and the instructions that use it.
- `sysycc.cfg`: `BasicBlock`, `Function` and `Unit`. Each writes
  LLVM-style text through `output(out)`. A `Function` prints its blocks
  breadth-first from the entry along successor edges, so blocks that no
  edge reaches are not printed. Empty blocks print nothing.
- `sysycc.ir`: the IR instructions `AllocaInstruction`,
  `GlobalInstruction`, `LoadInstruction`, `StoreInstruction`,
  `BinaryInstruction` (`BinaryOp`), `CmpInstruction` (`CmpOp`),
  `UncondBrInstruction`, `CondBrInstruction`, `RetInstruction`,
  `CallInstruction`, `ZextInstruction`, `XorInstruction` and
  `GepInstruction`. An instruction given a block appends itself to it.
- `sysycc.machine`: ARM `MachineOperand`s (immediate, virtual register,
  register, label), the machine instructions, `MachineBlock`,
  `MachineFunction` and `MachineUnit`. `MachineUnit.output(out)` writes
  the whole assembly file: header, global data, functions with their
  prologues, and the `addr_` literals for globals.
- `sysycc.lowering`: `lower_unit(unit, munit)` turns an IR `Unit` into
  machine code that uses virtual registers. It also offers
  `lower_function`, `lower_block`, `lower_instruction`,
  `machine_operand` and the `AsmBuilder` they share.
- `sysycc.liveness`: `LiveVariableAnalysis`, which fills the `live_in` and
  `live_out` sets of machine blocks.
- `sysycc.linear_scan`: `LinearScan(munit).allocate_registers()`. It maps
  virtual registers onto r4–r10. When it runs out of registers it spills
  intervals to the stack and tries again.

## Example

```python
import io

from sysycc.cfg import Function, Unit
from sysycc.ir import (AllocaInstruction, BinaryInstruction, BinaryOp,
                       LoadInstruction, RetInstruction, StoreInstruction)
from sysycc.linear_scan import LinearScan
from sysycc.lowering import lower_unit
from sysycc.machine import MachineUnit
from sysycc.operand import Operand
from sysycc.symbols import (ConstantSymbolEntry, IdentifierSymbolEntry, Scope,
                            TemporarySymbolEntry, next_label)
from sysycc.typesys import INT_TYPE, FunctionType, PointerType

def temp(type_):
    return Operand(TemporarySymbolEntry(type_, next_label()))

def const(value):
    return Operand(ConstantSymbolEntry(INT_TYPE, value))

# int main() { int a = 3; return a + 4; }
unit = Unit()
main = Function(unit, IdentifierSymbolEntry(FunctionType(INT_TYPE), "main", Scope.GLOBAL))
bb = main.entry

a = IdentifierSymbolEntry(INT_TYPE, "a", Scope.LOCAL)
addr = temp(PointerType(INT_TYPE))
AllocaInstruction(addr, a, bb)
StoreInstruction(addr, const(3), bb)
value = temp(INT_TYPE)
LoadInstruction(value, addr, bb)
total = temp(INT_TYPE)
BinaryInstruction(BinaryOp.ADD, total, value, const(4), bb)
RetInstruction(total, bb)

ir_text = io.StringIO()
unit.output(ir_text)                    # LLVM-style IR

munit = MachineUnit()
lower_unit(unit, munit)                 # IR -> machine code with virtual registers
LinearScan(munit).allocate_registers()  # virtual -> physical registers

asm = io.StringIO()
munit.output(asm)                       # ARM assembly text
```

Lowering copies the predecessor and successor lists of each IR block, and
liveness follows the successor edges. A function with more than one block
therefore needs its edges set with `BasicBlock.add_succ` and
`BasicBlock.add_pred` before it is lowered.

The assembly targets ARMv8-A in ARM state. It calls runtime functions such
as `getint` and `putint` by name, so it must be linked with a SysY runtime
library that provides them.

## What it does not do

The package has no front end. It does not lex or parse SysY source,
build or type-check a syntax tree, or generate IR from one. The IR must be
built with the classes above. It has no command-line program, and it
does not assemble, link or run the code it emits.