"""Instructions of the intermediate representation and their textual form."""

from __future__ import annotations

import abc
import enum
from typing import TYPE_CHECKING, Sequence, TextIO

from sysycc.operand import Operand
from sysycc.symbols import SymbolEntry

if TYPE_CHECKING:
    from sysycc.cfg import BasicBlock


class InstrKind(enum.Enum):
    """The category of an IR instruction."""

    BINARY = enum.auto()
    COND = enum.auto()
    UNCOND = enum.auto()
    RET = enum.auto()
    LOAD = enum.auto()
    STORE = enum.auto()
    CMP = enum.auto()
    ALLOCA = enum.auto()
    GLOBAL = enum.auto()
    CALL = enum.auto()
    ZEXT = enum.auto()
    XOR = enum.auto()
    GEP = enum.auto()


class BinaryOp(enum.IntEnum):
    """Arithmetic and logic opcodes."""

    SUB = 0
    ADD = 1
    AND = 2
    OR = 3
    MUL = 4
    DIV = 5
    MOD = 6


class CmpOp(enum.IntEnum):
    """Comparison opcodes."""

    E = 0
    NE = 1
    L = 2
    LE = 3
    G = 4
    GE = 5


_BINARY_NAMES = {
    BinaryOp.ADD: "add",
    BinaryOp.SUB: "sub",
    BinaryOp.AND: "and",
    BinaryOp.OR: "or",
    BinaryOp.MUL: "mul",
    BinaryOp.DIV: "sdiv",
    BinaryOp.MOD: "srem",
}

_CMP_NAMES = {
    CmpOp.E: "eq",
    CmpOp.NE: "ne",
    CmpOp.L: "slt",
    CmpOp.LE: "sle",
    CmpOp.G: "sgt",
    CmpOp.GE: "sge",
}


class Instruction(abc.ABC):
    """An IR instruction; given a block, it appends itself to that block."""

    def __init__(self, kind: InstrKind, insert_bb: BasicBlock | None = None) -> None:
        self.kind = kind
        self.opcode: int | None = None
        self.operands: list[Operand | None] = []
        self.parent: BasicBlock | None = None
        if insert_bb is not None:
            insert_bb.insert_back(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"

    @property
    def is_uncond(self) -> bool:
        return self.kind is InstrKind.UNCOND

    @property
    def is_cond(self) -> bool:
        return self.kind is InstrKind.COND

    @property
    def is_alloc(self) -> bool:
        return self.kind is InstrKind.ALLOCA

    def _define(self, dst: Operand) -> None:
        self.operands.append(dst)
        dst.def_inst = self

    def _use(self, src: Operand) -> None:
        self.operands.append(src)
        src.add_use(self)

    @abc.abstractmethod
    def output(self, out: TextIO) -> None:
        """Write the instruction as textual IR."""


class AllocaInstruction(Instruction):
    """Reserve stack space for a local variable."""

    def __init__(self, dst: Operand, se: SymbolEntry, insert_bb: BasicBlock | None = None) -> None:
        super().__init__(InstrKind.ALLOCA, insert_bb)
        self._define(dst)
        self.se = se

    def output(self, out: TextIO) -> None:
        out.write(f"  {self.operands[0]} = alloca {self.se.type}, align 4\n")


class GlobalInstruction(Instruction):
    """Declare a global variable; it writes no IR text of its own."""

    def __init__(
        self,
        dst: Operand,
        src: Operand,
        se: SymbolEntry,
        insert_bb: BasicBlock | None = None,
    ) -> None:
        super().__init__(InstrKind.GLOBAL, insert_bb)
        self._define(dst)
        self.se = se
        self.src = src

    def output(self, out: TextIO) -> None:
        return None


class LoadInstruction(Instruction):
    """Read a value from an address."""

    def __init__(self, dst: Operand, src_addr: Operand, insert_bb: BasicBlock | None = None) -> None:
        super().__init__(InstrKind.LOAD, insert_bb)
        self._define(dst)
        self._use(src_addr)

    def output(self, out: TextIO) -> None:
        dst, src = self.operands
        out.write(f"  {dst} = load {dst.type}, {src.type} {src}, align 4\n")


class StoreInstruction(Instruction):
    """Write a value to an address."""

    def __init__(self, dst_addr: Operand, src: Operand, insert_bb: BasicBlock | None = None) -> None:
        super().__init__(InstrKind.STORE, insert_bb)
        self._use(dst_addr)
        self._use(src)

    def output(self, out: TextIO) -> None:
        dst, src = self.operands
        out.write(f"  store {src.type} {src}, {dst.type} {dst}, align 4\n")


class BinaryInstruction(Instruction):
    """dst = src1 <op> src2."""

    def __init__(
        self,
        opcode: BinaryOp,
        dst: Operand,
        src1: Operand,
        src2: Operand,
        insert_bb: BasicBlock | None = None,
    ) -> None:
        super().__init__(InstrKind.BINARY, insert_bb)
        self.opcode = BinaryOp(opcode)
        self._define(dst)
        self._use(src1)
        self._use(src2)

    def output(self, out: TextIO) -> None:
        dst, src1, src2 = self.operands
        op = _BINARY_NAMES[self.opcode]
        out.write(f"  {dst} = {op} {dst.type} {src1}, {src2}\n")


class CmpInstruction(Instruction):
    """dst = compare src1 with src2."""

    def __init__(
        self,
        opcode: CmpOp,
        dst: Operand,
        src1: Operand,
        src2: Operand,
        insert_bb: BasicBlock | None = None,
    ) -> None:
        super().__init__(InstrKind.CMP, insert_bb)
        self.opcode = CmpOp(opcode)
        self._define(dst)
        self._use(src1)
        self._use(src2)

    def output(self, out: TextIO) -> None:
        dst, src1, src2 = self.operands
        op = _CMP_NAMES[self.opcode]
        out.write(f"  {dst} = icmp {op} {src1.type} {src1}, {src2}\n")


class UncondBrInstruction(Instruction):
    """Jump to ``branch``; a jump to an empty block writes nothing."""

    def __init__(self, to: BasicBlock, insert_bb: BasicBlock | None = None) -> None:
        super().__init__(InstrKind.UNCOND, insert_bb)
        self.branch = to

    def output(self, out: TextIO) -> None:
        if not self.branch.empty:
            out.write(f"  br label %B{self.branch.no}\n")


class CondBrInstruction(Instruction):
    """Jump to ``true_branch`` or ``false_branch`` depending on ``cond``."""

    def __init__(
        self,
        true_branch: BasicBlock,
        false_branch: BasicBlock,
        cond: Operand,
        insert_bb: BasicBlock | None = None,
    ) -> None:
        super().__init__(InstrKind.COND, insert_bb)
        self.true_branch = true_branch
        self.false_branch = false_branch
        self._use(cond)

    def output(self, out: TextIO) -> None:
        cond = self.operands[0]
        out.write(
            f"  br {cond.type} {cond}, label %B{self.true_branch.no}, "
            f"label %B{self.false_branch.no}\n"
        )


class RetInstruction(Instruction):
    """Return from the function, with a value or without."""

    def __init__(self, src: Operand | None, insert_bb: BasicBlock | None = None) -> None:
        super().__init__(InstrKind.RET, insert_bb)
        if src is not None:
            self._use(src)

    def output(self, out: TextIO) -> None:
        if not self.operands:
            out.write("  ret void\n")
        else:
            ret = self.operands[0]
            out.write(f"  ret {ret.type} {ret}\n")


class CallInstruction(Instruction):
    """Call ``func``; ``dst`` is None when the result is not kept."""

    def __init__(
        self,
        dst: Operand | None,
        func: SymbolEntry,
        params: Sequence[Operand],
        insert_bb: BasicBlock | None = None,
    ) -> None:
        super().__init__(InstrKind.CALL, insert_bb)
        self.func = func
        self.dst = dst
        self.operands.append(dst)
        if dst is not None:
            dst.def_inst = self
        for param in params:
            self._use(param)

    @property
    def params(self) -> list[Operand]:
        return list(self.operands[1:])

    def output(self, out: TextIO) -> None:
        ret_type = self.func.type.return_type
        out.write("  ")
        if not ret_type.is_void:
            out.write(f"{self.operands[0]} = ")
        args = ", ".join(f"{p.type} {p}" for p in self.operands[1:])
        out.write(f"call {ret_type} {self.func}({args})\n")


class ZextInstruction(Instruction):
    """Widen an i1 to an i32."""

    def __init__(self, dst: Operand, src: Operand, insert_bb: BasicBlock | None = None) -> None:
        super().__init__(InstrKind.ZEXT, insert_bb)
        self._define(dst)
        self._use(src)

    def output(self, out: TextIO) -> None:
        dst, src = self.operands
        out.write(f"  {dst} = zext i1 {src} to i32\n")


class XorInstruction(Instruction):
    """Logical negation of an i1."""

    def __init__(self, dst: Operand, src: Operand, insert_bb: BasicBlock | None = None) -> None:
        super().__init__(InstrKind.XOR, insert_bb)
        self._define(dst)
        self._use(src)

    def output(self, out: TextIO) -> None:
        dst, src = self.operands
        out.write(f"  {dst} = xor i1 {src}, true\n")


class GepInstruction(Instruction):
    """Address arithmetic for one array dimension."""

    def __init__(
        self,
        dst: Operand,
        arr: Operand,
        idx: Operand,
        insert_bb: BasicBlock | None = None,
        param_first: bool = False,
    ) -> None:
        super().__init__(InstrKind.GEP, insert_bb)
        self.param_first = param_first
        self._define(dst)
        self._use(arr)
        self._use(idx)
        self.first = False
        self.last = False
        self.init: Operand | None = None

    def output(self, out: TextIO) -> None:
        dst, arr, idx = self.operands
        arr_type = str(arr.type)
        pointee = arr_type[:-1]
        if self.param_first:
            out.write(
                f"  {dst} = getelementptr inbounds {pointee}, {arr_type} {arr}, i32 {idx}\n"
            )
        else:
            out.write(
                f"  {dst} = getelementptr inbounds {pointee}, {arr_type} {arr}, "
                f"i32 0, i32 {idx}\n"
            )