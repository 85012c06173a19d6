"""Lowering of IR functions and instructions to ARM machine code."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Callable

from sysycc.cfg import BasicBlock, Function, Unit
from sysycc.ir import (
    AllocaInstruction,
    BinaryInstruction,
    BinaryOp,
    CallInstruction,
    CmpInstruction,
    CmpOp,
    CondBrInstruction,
    GepInstruction,
    GlobalInstruction,
    Instruction,
    LoadInstruction,
    RetInstruction,
    StoreInstruction,
    UncondBrInstruction,
    XorInstruction,
    ZextInstruction,
)
from sysycc.machine import (
    FP,
    LR,
    SP,
    BinaryMInstruction,
    BranchMInstruction,
    CmpMInstruction,
    Cond,
    LoadMInstruction,
    MachineBlock,
    MachineFunction,
    MachineInstruction,
    MachineOperand,
    MachineUnit,
    MovMInstruction,
    OperandKind,
    StackMInstruction,
    StoreMInstruction,
)
from sysycc.operand import Operand
from sysycc.symbols import next_label


@dataclass
class AsmBuilder:
    """Where generated machine code goes, and the last comparison seen."""

    unit: MachineUnit | None = None
    function: MachineFunction | None = None
    block: MachineBlock | None = None
    cmp_opcode: int = Cond.NONE

    def emit(self, inst: MachineInstruction) -> None:
        """Append ``inst`` to the current machine block."""
        self.block.insert_inst(inst)


def _reg(regno: int) -> MachineOperand:
    return MachineOperand(OperandKind.REG, regno)


def _vreg() -> MachineOperand:
    return MachineOperand(OperandKind.VREG, next_label())


def _imm(value: int) -> MachineOperand:
    return MachineOperand(OperandKind.IMM, value)


def _label(block_no: int) -> MachineOperand:
    return MachineOperand(OperandKind.LABEL, label=f".L{block_no}")


def _bytes(bits: int) -> int:
    """Bits to bytes, truncating toward zero."""
    q = abs(bits) // 8
    return q if bits >= 0 else -q


def _is_global(operand: Operand) -> bool:
    entry = operand.entry
    return entry.is_variable and entry.is_global


def _is_stack_slot(operand: Operand) -> bool:
    return (
        operand.entry.is_temporary
        and operand.def_inst is not None
        and operand.def_inst.is_alloc
    )


def machine_operand(operand: Operand) -> MachineOperand:
    """The machine operand standing for an IR operand."""
    entry = operand.entry
    if entry.is_constant:
        return _imm(entry.value)
    if entry.is_temporary:
        return MachineOperand(OperandKind.VREG, entry.label)
    if entry.is_variable:
        if entry.is_global:
            return MachineOperand(OperandKind.LABEL, label=str(entry))
        if entry.is_param:
            return _reg(entry.param_no if entry.param_no < 4 else 3)
        raise ValueError(f"local identifier {entry} has no machine operand")
    raise ValueError(f"cannot lower operand {operand!r}")


def _in_register(builder: AsmBuilder, operand: MachineOperand) -> MachineOperand:
    """Load an immediate into a fresh virtual register; return the register."""
    reg = _vreg()
    builder.emit(LoadMInstruction(builder.block, reg, operand))
    return copy.copy(reg)


def _lower_alloca(inst: AllocaInstruction, builder: AsmBuilder) -> None:
    size = _bytes(inst.se.type.size)
    if size <= 0:
        size = 4
    offset = builder.function.alloc_space(size)
    inst.operands[0].entry.offset = -offset


def _lower_load(inst: LoadInstruction, builder: AsmBuilder) -> None:
    block = builder.block
    dst_op, src_op = inst.operands
    if _is_global(src_op):
        dst = machine_operand(dst_op)
        reg1 = _vreg()
        reg2 = copy.copy(reg1)
        src = machine_operand(src_op)
        builder.emit(LoadMInstruction(block, reg1, src))
        builder.emit(LoadMInstruction(block, dst, reg2))
    elif _is_stack_slot(src_op):
        dst = machine_operand(dst_op)
        builder.emit(
            LoadMInstruction(block, dst, _reg(FP), _imm(src_op.entry.offset))
        )
    else:
        builder.emit(
            LoadMInstruction(block, machine_operand(dst_op), machine_operand(src_op))
        )


def _lower_store(inst: StoreInstruction, builder: AsmBuilder) -> None:
    block = builder.block
    dst_op, src_op = inst.operands
    dst = machine_operand(dst_op)
    src = machine_operand(src_op)
    if src_op.entry.is_constant:
        src = _in_register(builder, src)
    if _is_global(dst_op):
        reg = _vreg()
        builder.emit(LoadMInstruction(block, reg, dst))
        builder.emit(StoreMInstruction(block, src, reg))
    elif _is_stack_slot(dst_op):
        fp = _reg(FP)
        entry = dst_op.entry
        offset = _imm(entry.offset)
        if entry.param_no > 3:
            builder.emit(LoadMInstruction(block, src, fp, _imm(abs(entry.offset) + 24)))
        builder.emit(StoreMInstruction(block, src, fp, offset))
    elif dst_op.type.is_ptr:
        builder.emit(StoreMInstruction(block, src, dst))


_BINARY_OPS = {
    BinaryOp.ADD: BinaryMInstruction.Op.ADD,
    BinaryOp.SUB: BinaryMInstruction.Op.SUB,
    BinaryOp.AND: BinaryMInstruction.Op.AND,
    BinaryOp.OR: BinaryMInstruction.Op.OR,
    BinaryOp.MUL: BinaryMInstruction.Op.MUL,
    BinaryOp.DIV: BinaryMInstruction.Op.DIV,
}


def _lower_binary(inst: BinaryInstruction, builder: AsmBuilder) -> None:
    block = builder.block
    dst, src1, src2 = (machine_operand(op) for op in inst.operands)
    if src1.is_imm:
        src1 = _in_register(builder, src1)
    if src2.is_imm:
        src2 = _in_register(builder, src2)
    if inst.opcode is BinaryOp.MOD:
        Op = BinaryMInstruction.Op
        builder.emit(BinaryMInstruction(block, Op.DIV, dst, src1, src2))
        tmp = copy.copy(dst)
        src1 = copy.copy(src1)
        src2 = copy.copy(src2)
        builder.emit(BinaryMInstruction(block, Op.MUL, tmp, dst, src2))
        dst = copy.copy(tmp)
        builder.emit(BinaryMInstruction(block, Op.SUB, dst, src1, tmp))
        return
    builder.emit(BinaryMInstruction(block, _BINARY_OPS[inst.opcode], dst, src1, src2))


_FALSE_COND = {
    CmpOp.E: CmpOp.NE,
    CmpOp.NE: CmpOp.E,
    CmpOp.L: CmpOp.GE,
    CmpOp.GE: CmpOp.L,
    CmpOp.G: CmpOp.LE,
    CmpOp.LE: CmpOp.G,
}


def _lower_cmp(inst: CmpInstruction, builder: AsmBuilder) -> None:
    block = builder.block
    dst_op, src1_op, src2_op = inst.operands
    src1 = machine_operand(src1_op)
    src2 = machine_operand(src2_op)
    if src1.is_imm:
        src1 = _in_register(builder, src1)
    if src2.is_imm and src2_op.entry.value > 255:
        src2 = _in_register(builder, src2)
    opcode = inst.opcode
    builder.emit(CmpMInstruction(block, src1, src2, opcode))
    builder.cmp_opcode = opcode
    dst = machine_operand(dst_op)
    mov = MovMInstruction.Op.MOV
    builder.emit(MovMInstruction(block, mov, dst, _imm(1), opcode))
    builder.emit(MovMInstruction(block, mov, dst, _imm(0), _FALSE_COND[opcode]))


def _lower_uncond(inst: UncondBrInstruction, builder: AsmBuilder) -> None:
    builder.emit(
        BranchMInstruction(builder.block, BranchMInstruction.Op.B, _label(inst.branch.no))
    )


def _lower_cond(inst: CondBrInstruction, builder: AsmBuilder) -> None:
    block = builder.block
    b = BranchMInstruction.Op.B
    builder.emit(
        BranchMInstruction(block, b, _label(inst.true_branch.no), builder.cmp_opcode)
    )
    builder.emit(BranchMInstruction(block, b, _label(inst.false_branch.no)))


def _lower_ret(inst: RetInstruction, builder: AsmBuilder) -> None:
    block = builder.block
    if inst.operands:
        src = machine_operand(inst.operands[0])
        builder.emit(MovMInstruction(block, MovMInstruction.Op.MOV, _reg(0), src))
    sp = _reg(SP)
    frame = _imm(builder.function.alloc_space(0))
    builder.emit(BinaryMInstruction(block, BinaryMInstruction.Op.ADD, sp, sp, frame))
    builder.emit(BranchMInstruction(block, BranchMInstruction.Op.BX, _reg(LR)))


def _lower_call(inst: CallInstruction, builder: AsmBuilder) -> None:
    block = builder.block
    params = inst.operands[1:]
    count = len(params)
    mov = MovMInstruction.Op.MOV
    if 0 < count <= 4:
        for i, param in enumerate(params):
            operand = machine_operand(param)
            if operand.is_imm and operand.val < 255:
                builder.emit(LoadMInstruction(block, _reg(i), operand))
            else:
                builder.emit(MovMInstruction(block, mov, _reg(i), operand))
    elif count > 4:
        for i, param in enumerate(params[:4]):
            operand = machine_operand(param)
            if operand.is_imm:
                builder.emit(LoadMInstruction(block, _reg(i), operand))
            else:
                builder.emit(MovMInstruction(block, mov, _reg(i), operand))
        for param in params[4:]:
            operand = machine_operand(param)
            if operand.is_imm:
                builder.emit(LoadMInstruction(block, _vreg(), operand))
                operand = _vreg()
            builder.emit(
                StackMInstruction(block, StackMInstruction.Op.PUSH, [], operand)
            )
    target = MachineOperand(OperandKind.LABEL, label=str(inst.func))
    builder.emit(BranchMInstruction(block, BranchMInstruction.Op.BL, target))
    if count > 4:
        sp = _reg(SP)
        builder.emit(
            BinaryMInstruction(
                block, BinaryMInstruction.Op.ADD, sp, sp, _imm((count - 4) * 4)
            )
        )
    if inst.dst is not None:
        builder.emit(MovMInstruction(block, mov, machine_operand(inst.dst), _reg(0)))


def _lower_zext(inst: ZextInstruction, builder: AsmBuilder) -> None:
    dst, src = (machine_operand(op) for op in inst.operands)
    builder.emit(MovMInstruction(builder.block, MovMInstruction.Op.MOV, dst, src))


def _lower_xor(inst: XorInstruction, builder: AsmBuilder) -> None:
    block = builder.block
    dst = machine_operand(inst.operands[0])
    mov = MovMInstruction.Op.MOV
    builder.emit(MovMInstruction(block, mov, dst, _imm(1), Cond.EQ))
    builder.emit(MovMInstruction(block, mov, dst, _imm(0), Cond.NE))


def _lower_global(inst: GlobalInstruction, builder: AsmBuilder) -> None:
    return None


def _small_or_load(builder: AsmBuilder, dst: MachineOperand, value: MachineOperand) -> None:
    if abs(value.val) < 255:
        builder.emit(MovMInstruction(builder.block, MovMInstruction.Op.MOV, dst, value))
    else:
        builder.emit(LoadMInstruction(builder.block, dst, value))


def _lower_gep(inst: GepInstruction, builder: AsmBuilder) -> None:
    block = builder.block
    dst_op, arr_op, idx_op = inst.operands
    dst = machine_operand(dst_op)
    idx = machine_operand(idx_op)
    base = None
    idx_reg = _vreg()
    if idx.is_imm:
        _small_or_load(builder, idx_reg, idx)
        idx = copy.copy(idx_reg)
    if inst.param_first:
        size = _bytes(arr_op.type.value_type.size)
    else:
        if inst.first:
            base = _vreg()
            if _is_global(arr_op):
                builder.emit(LoadMInstruction(block, base, machine_operand(arr_op)))
            else:
                _small_or_load(builder, base, _imm(arr_op.entry.offset))
        size = _bytes(arr_op.type.value_type.element_type.size)
    size_reg = _vreg()
    _small_or_load(builder, size_reg, _imm(size))
    off = _vreg()
    builder.emit(BinaryMInstruction(block, BinaryMInstruction.Op.MUL, off, idx, size_reg))
    off = copy.copy(off)
    add = BinaryMInstruction.Op.ADD
    if inst.param_first or not inst.first:
        builder.emit(BinaryMInstruction(block, add, dst, machine_operand(arr_op), off))
        return
    addr = _vreg()
    builder.emit(BinaryMInstruction(block, add, addr, copy.copy(base), off))
    addr = copy.copy(addr)
    if _is_global(arr_op):
        builder.emit(MovMInstruction(block, MovMInstruction.Op.MOV, dst, addr))
    else:
        builder.emit(BinaryMInstruction(block, add, dst, _reg(FP), addr))


_LOWERERS: dict[type, Callable[[Instruction, AsmBuilder], None]] = {
    AllocaInstruction: _lower_alloca,
    LoadInstruction: _lower_load,
    StoreInstruction: _lower_store,
    BinaryInstruction: _lower_binary,
    CmpInstruction: _lower_cmp,
    UncondBrInstruction: _lower_uncond,
    CondBrInstruction: _lower_cond,
    RetInstruction: _lower_ret,
    CallInstruction: _lower_call,
    ZextInstruction: _lower_zext,
    XorInstruction: _lower_xor,
    GlobalInstruction: _lower_global,
    GepInstruction: _lower_gep,
}


def lower_instruction(inst: Instruction, builder: AsmBuilder) -> None:
    """Append the machine code for ``inst`` to the builder's current block."""
    for cls in type(inst).__mro__:
        handler = _LOWERERS.get(cls)
        if handler is not None:
            handler(inst, builder)
            return
    raise TypeError(f"cannot lower {type(inst).__name__}")


def lower_block(block: BasicBlock, builder: AsmBuilder) -> MachineBlock:
    """Lower ``block`` into a new machine block of the current function."""
    mblock = MachineBlock(builder.function, block.no)
    builder.block = mblock
    for inst in block:
        lower_instruction(inst, builder)
    builder.function.insert_block(mblock)
    return mblock


def lower_function(func: Function, builder: AsmBuilder) -> MachineFunction:
    """Lower ``func`` and its CFG edges into a new machine function."""
    mfunc = MachineFunction(builder.unit, func.symbol)
    builder.function = mfunc
    mapping: dict[int, MachineBlock] = {}
    for block in func.blocks:
        mapping[id(block)] = lower_block(block, builder)
    for block in func.blocks:
        mblock = mapping[id(block)]
        for pred in block.preds:
            mblock.preds.append(mapping[id(pred)])
        for succ in block.succs:
            mblock.succs.append(mapping[id(succ)])
    builder.unit.insert_func(mfunc)
    return mfunc


def lower_unit(unit: Unit, munit: MachineUnit) -> MachineUnit:
    """Lower every function of ``unit`` into ``munit``."""
    builder = AsmBuilder(unit=munit)
    for func in unit.funcs:
        lower_function(func, builder)
    return munit