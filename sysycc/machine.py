"""ARM machine code: operands, instructions, blocks, functions and units."""

from __future__ import annotations

import abc
import enum
import io
from typing import Iterator, Sequence, TextIO

from sysycc.symbols import SymbolEntry


class OperandKind(enum.IntEnum):
    """What a machine operand denotes; the order is used when sorting operands."""

    IMM = 0
    VREG = 1
    REG = 2
    LABEL = 3


class Cond(enum.IntEnum):
    """Execution condition of an instruction, in the order of the IR comparisons."""

    EQ = 0
    NE = 1
    LT = 2
    LE = 3
    GT = 4
    GE = 5
    NONE = 6


_COND_SUFFIX = {
    Cond.EQ: "eq",
    Cond.NE: "ne",
    Cond.LT: "lt",
    Cond.LE: "le",
    Cond.GT: "gt",
    Cond.GE: "ge",
    Cond.NONE: "",
}

FP = 11
SP = 13
LR = 14
PC = 15

_REG_NAMES = {FP: "fp", SP: "sp", LR: "lr", PC: "pc"}


class MachineOperand:
    """An immediate, a virtual or real register, or an address label."""

    def __init__(self, kind: OperandKind, value: int = 0, label: str = "") -> None:
        self.kind = OperandKind(kind)
        self.val = 0
        self.reg_no = 0
        self.label = label
        if self.kind is OperandKind.IMM:
            self.val = value
        elif self.kind is not OperandKind.LABEL:
            self.reg_no = value
        self.parent: MachineInstruction | None = None

    @property
    def is_imm(self) -> bool:
        return self.kind is OperandKind.IMM

    @property
    def is_reg(self) -> bool:
        return self.kind is OperandKind.REG

    @property
    def is_vreg(self) -> bool:
        return self.kind is OperandKind.VREG

    @property
    def is_label(self) -> bool:
        return self.kind is OperandKind.LABEL

    def set_reg(self, regno: int) -> None:
        """Turn this operand into the real register ``regno``."""
        self.kind = OperandKind.REG
        self.reg_no = regno

    def key(self) -> tuple:
        """A value key: operands naming the same value share it, and keys sort."""
        if self.kind is OperandKind.IMM:
            return (self.kind, self.val)
        if self.kind is OperandKind.LABEL:
            return (self.kind, self.label)
        return (self.kind, self.reg_no)

    def __str__(self) -> str:
        if self.kind is OperandKind.IMM:
            return f"#{self.val}"
        if self.kind is OperandKind.VREG:
            return f"v{self.reg_no}"
        if self.kind is OperandKind.REG:
            return _REG_NAMES.get(self.reg_no, f"r{self.reg_no}")
        if self.label.startswith(".L"):
            return self.label
        if self.label.startswith("@"):
            return self.label[1:]
        return f"addr_{self.label}"

    def __repr__(self) -> str:
        return f"<MachineOperand {self}>"

    def output(self, out: TextIO) -> None:
        """Write the operand as assembly text."""
        out.write(str(self))


def _reg(regno: int) -> MachineOperand:
    return MachineOperand(OperandKind.REG, regno)


class _InstType(enum.Enum):
    BINARY = enum.auto()
    LOAD = enum.auto()
    STORE = enum.auto()
    MOV = enum.auto()
    BRANCH = enum.auto()
    CMP = enum.auto()
    STACK = enum.auto()


class MachineInstruction(abc.ABC):
    """One assembly instruction with the operands it defines and uses."""

    def __init__(
        self,
        parent: MachineBlock | None,
        inst_type: _InstType,
        op: int,
        cond: int = Cond.NONE,
    ) -> None:
        self.parent = parent
        self.inst_type = inst_type
        self.op = op
        self.cond = Cond(cond)
        self.no = 0
        self.defs: list[MachineOperand] = []
        self.uses: list[MachineOperand] = []

    def _add_def(self, operand: MachineOperand) -> None:
        self.defs.append(operand)
        operand.parent = self

    def _add_use(self, operand: MachineOperand) -> None:
        self.uses.append(operand)
        operand.parent = self

    @property
    def _cond_text(self) -> str:
        return _COND_SUFFIX[self.cond]

    @abc.abstractmethod
    def output(self, out: TextIO) -> None:
        """Write the instruction as assembly text."""

    def __str__(self) -> str:
        buf = io.StringIO()
        self.output(buf)
        return buf.getvalue()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {str(self).strip()!r}>"


class BinaryMInstruction(MachineInstruction):
    """dst = src1 <op> src2."""

    class Op(enum.IntEnum):
        ADD = 0
        SUB = 1
        MUL = 2
        DIV = 3
        AND = 4
        OR = 5

    _NAMES = {
        Op.ADD: "add",
        Op.SUB: "sub",
        Op.AND: "and",
        Op.OR: "orr",
        Op.MUL: "mul",
        Op.DIV: "sdiv",
    }

    def __init__(
        self,
        parent: MachineBlock | None,
        op: int,
        dst: MachineOperand,
        src1: MachineOperand,
        src2: MachineOperand,
        cond: int = Cond.NONE,
    ) -> None:
        super().__init__(parent, _InstType.BINARY, self.Op(op), cond)
        self._add_def(dst)
        self._add_use(src1)
        self._add_use(src2)

    def output(self, out: TextIO) -> None:
        out.write(f"\t{self._NAMES[self.op]} {self._cond_text}")
        out.write(f"{self.defs[0]}, {self.uses[0]}, {self.uses[1]}\n")


def _address(operands: Sequence[MachineOperand]) -> str:
    base = operands[0]
    text = ", ".join(str(o) for o in operands)
    if base.is_reg or base.is_vreg:
        return f"[{text}]"
    return text


class LoadMInstruction(MachineInstruction):
    """Load a register from memory, a label or an immediate."""

    def __init__(
        self,
        parent: MachineBlock | None,
        dst: MachineOperand,
        src1: MachineOperand,
        src2: MachineOperand | None = None,
        cond: int = Cond.NONE,
    ) -> None:
        super().__init__(parent, _InstType.LOAD, -1, cond)
        self._add_def(dst)
        self._add_use(src1)
        if src2 is not None:
            self._add_use(src2)

    def output(self, out: TextIO) -> None:
        out.write(f"\tldr {self.defs[0]}, ")
        if self.uses[0].is_imm:
            out.write(f"={self.uses[0].val}\n")
            return
        out.write(f"{_address(self.uses)}\n")


class StoreMInstruction(MachineInstruction):
    """Store ``src1`` to the address given by ``src2`` and an optional offset."""

    def __init__(
        self,
        parent: MachineBlock | None,
        src1: MachineOperand,
        src2: MachineOperand,
        src3: MachineOperand | None = None,
        cond: int = Cond.NONE,
    ) -> None:
        super().__init__(parent, _InstType.STORE, -1, cond)
        self._add_use(src1)
        self._add_use(src2)
        if src3 is not None:
            self._add_use(src3)

    def output(self, out: TextIO) -> None:
        out.write(f"\tstr {self.uses[0]}, {_address(self.uses[1:])}\n")


class MovMInstruction(MachineInstruction):
    """dst = src, optionally under a condition."""

    class Op(enum.IntEnum):
        MOV = 0
        MVN = 1

    def __init__(
        self,
        parent: MachineBlock | None,
        op: int,
        dst: MachineOperand,
        src: MachineOperand,
        cond: int = Cond.NONE,
    ) -> None:
        super().__init__(parent, _InstType.MOV, self.Op(op), cond)
        self._add_def(dst)
        self._add_use(src)

    def output(self, out: TextIO) -> None:
        out.write(f"\tmov{self._cond_text} {self.defs[0]}, {self.uses[0]}\n")


class BranchMInstruction(MachineInstruction):
    """A branch; ``bx`` also restores the saved registers first."""

    class Op(enum.IntEnum):
        B = 0
        BL = 1
        BX = 2

    _NAMES = {Op.B: "b", Op.BL: "bl", Op.BX: "bx"}

    def __init__(
        self,
        parent: MachineBlock | None,
        op: int,
        dst: MachineOperand,
        cond: int = Cond.NONE,
    ) -> None:
        super().__init__(parent, _InstType.BRANCH, self.Op(op), cond)
        self._add_use(dst)

    def output(self, out: TextIO) -> None:
        if self.op is self.Op.BX:
            pop = StackMInstruction(
                self.parent,
                StackMInstruction.Op.POP,
                self.parent.parent.saved_reg_operands(),
                _reg(FP),
                _reg(LR),
            )
            pop.output(out)
        out.write(f"\t{self._NAMES[self.op]}{self._cond_text} {self.uses[0]}\n")


class CmpMInstruction(MachineInstruction):
    """Compare two operands and set the flags."""

    class Op(enum.IntEnum):
        CMP = 0

    def __init__(
        self,
        parent: MachineBlock | None,
        src1: MachineOperand,
        src2: MachineOperand,
        cond: int = Cond.NONE,
    ) -> None:
        super().__init__(parent, _InstType.CMP, -1, cond)
        self._add_use(src1)
        self._add_use(src2)

    def output(self, out: TextIO) -> None:
        out.write(f"\tcmp {self.uses[0]}, {self.uses[1]}\n")


class StackMInstruction(MachineInstruction):
    """push or pop of a register list."""

    class Op(enum.IntEnum):
        PUSH = 0
        POP = 1

    def __init__(
        self,
        parent: MachineBlock | None,
        op: int,
        regs: Sequence[MachineOperand],
        src1: MachineOperand | None = None,
        src2: MachineOperand | None = None,
        cond: int = Cond.NONE,
    ) -> None:
        super().__init__(parent, _InstType.STACK, self.Op(op), cond)
        self.uses.extend(regs)
        if src1 is not None:
            self._add_use(src1)
        if src2 is not None:
            self._add_use(src2)

    def output(self, out: TextIO) -> None:
        name = "push" if self.op is self.Op.PUSH else "pop"
        regs = ", ".join(str(r) for r in self.uses)
        out.write(f"\t{name} {{{regs}}}\n")


class MachineBlock:
    """A labelled run of machine instructions with CFG edges and liveness sets."""

    def __init__(self, parent: MachineFunction | None, no: int) -> None:
        self.parent = parent
        self.no = no
        self.preds: list[MachineBlock] = []
        self.succs: list[MachineBlock] = []
        self.insts: list[MachineInstruction] = []
        self.live_in: set[MachineOperand] = set()
        self.live_out: set[MachineOperand] = set()

    def __iter__(self) -> Iterator[MachineInstruction]:
        return iter(tuple(self.insts))

    def __len__(self) -> int:
        return len(self.insts)

    def __repr__(self) -> str:
        return f"<MachineBlock .L{self.no}>"

    def insert_inst(self, inst: MachineInstruction) -> None:
        """Append ``inst`` to the block."""
        self.insts.append(inst)

    def output(self, out: TextIO) -> None:
        """Write the label and the instructions."""
        out.write(f".L{self.no}:\n")
        for inst in self.insts:
            inst.output(out)


class MachineFunction:
    """A function in assembly, with its frame size and callee-saved registers."""

    def __init__(self, parent: MachineUnit | None, symbol: SymbolEntry) -> None:
        self.parent = parent
        self.symbol = symbol
        self.blocks: list[MachineBlock] = []
        self.stack_size = 0
        self.saved_regs: set[int] = set()

    def __iter__(self) -> Iterator[MachineBlock]:
        return iter(tuple(self.blocks))

    def __repr__(self) -> str:
        return f"<MachineFunction {self.symbol}>"

    def alloc_space(self, size: int) -> int:
        """Grow the frame by ``size`` bytes and return the new frame size."""
        self.stack_size += size
        return self.stack_size

    def insert_block(self, block: MachineBlock) -> None:
        self.blocks.append(block)

    def add_saved_reg(self, regno: int) -> None:
        self.saved_regs.add(regno)

    def saved_reg_operands(self) -> list[MachineOperand]:
        """Fresh register operands for the saved registers, in ascending order."""
        return [_reg(regno) for regno in sorted(self.saved_regs)]

    def output(self, out: TextIO) -> None:
        """Write the prologue followed by every block."""
        name = str(self.symbol)[1:]
        out.write(f"\t.global {name}\n")
        out.write(f"\t.type {name} , %function\n")
        out.write(f"{name}:\n")
        fp, sp, lr = _reg(FP), _reg(SP), _reg(LR)
        StackMInstruction(
            None, StackMInstruction.Op.PUSH, self.saved_reg_operands(), fp, lr
        ).output(out)
        MovMInstruction(None, MovMInstruction.Op.MOV, fp, sp).output(out)
        BinaryMInstruction(
            None,
            BinaryMInstruction.Op.SUB,
            sp,
            sp,
            MachineOperand(OperandKind.IMM, self.alloc_space(0)),
        ).output(out)
        for block in self.blocks:
            block.output(out)
        out.write("\n")


class MachineUnit:
    """The whole assembly file: global data and functions."""

    def __init__(self) -> None:
        self.funcs: list[MachineFunction] = []
        self.globals: list[SymbolEntry] = []

    def __iter__(self) -> Iterator[MachineFunction]:
        return iter(tuple(self.funcs))

    def insert_func(self, func: MachineFunction) -> None:
        self.funcs.append(func)

    def insert_global(self, entry: SymbolEntry) -> None:
        self.globals.append(entry)

    @staticmethod
    def _write_data(out: TextIO, entry: SymbolEntry) -> None:
        name = str(entry)
        out.write(f".global {name}\n")
        out.write(f"\t.size {name}, {entry.type.size // 8}\n")
        out.write(f"{name}:\n")
        if not entry.type.is_array:
            out.write(f"\t.word {entry.value}\n")
            return
        count = entry.type.size // 32
        values = entry.array_value
        if values is None or len(values) < count:
            raise ValueError(f"global array {name} lacks initial values")
        for word in values[:count]:
            out.write(f"\t.word {int(word)}\n")

    def _write_global_decls(self, out: TextIO) -> None:
        if self.globals:
            out.write("\t.data\n")
        constants = []
        zero_arrays = []
        for entry in self.globals:
            if entry.constant:
                constants.append(entry)
            elif entry.all_zero:
                zero_arrays.append(entry)
            else:
                self._write_data(out, entry)
        if constants:
            out.write(".section .rodata\n")
            for entry in constants:
                self._write_data(out, entry)
        for entry in zero_arrays:
            if entry.type.is_array:
                out.write(f"\t.comm {entry}, {entry.type.size // 8}, 4\n")

    def _write_global_addrs(self, out: TextIO) -> None:
        for entry in self.globals:
            out.write(f"addr_{entry}:\n")
            out.write(f"\t.word {entry}\n")

    def output(self, out: TextIO) -> None:
        """Write the header, global data, functions and address literals."""
        out.write("\t.arch armv8-a\n")
        out.write("\t.arch_extension crc\n")
        out.write("\t.arm\n")
        self._write_global_decls(out)
        out.write("\t.text\n")
        for func in self.funcs:
            func.output(out)
        self._write_global_addrs(out)