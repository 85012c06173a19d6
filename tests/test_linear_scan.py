from sysycc.linear_scan import ALLOCATABLE_REGS, Interval, LinearScan
from sysycc.machine import (
    FP,
    BinaryMInstruction,
    BranchMInstruction,
    LoadMInstruction,
    MachineBlock,
    MachineFunction,
    MachineOperand,
    MachineUnit,
    MovMInstruction,
    OperandKind,
    StoreMInstruction,
)
from sysycc.symbols import IdentifierSymbolEntry, Scope
from sysycc.typesys import INT_TYPE, FunctionType


def _vreg(n):
    return MachineOperand(OperandKind.VREG, n)


def _imm(v):
    return MachineOperand(OperandKind.IMM, v)


def _reg(n):
    return MachineOperand(OperandKind.REG, n)


def _unit_with_block():
    unit = MachineUnit()
    sym = IdentifierSymbolEntry(FunctionType(INT_TYPE, []), "main", Scope.GLOBAL)
    func = MachineFunction(unit, sym)
    unit.insert_func(func)
    block = MachineBlock(func, 1)
    func.insert_block(block)
    return unit, func, block


def _pressure_program(block, count):
    block.insert_inst(MovMInstruction(block, MovMInstruction.Op.MOV, _reg(0), _imm(0)))
    for i in range(1, count + 1):
        block.insert_inst(LoadMInstruction(block, _vreg(1000 + i), _imm(i)))
    for i in range(1, count + 1):
        block.insert_inst(
            BinaryMInstruction(block, BinaryMInstruction.Op.ADD, _reg(0), _reg(0), _vreg(1000 + i))
        )


def _run(block):
    regs = {FP: 0}
    mem = {}

    def value(op):
        assert not op.is_vreg
        return op.val if op.is_imm else regs[op.reg_no]

    def address(ops):
        return sum(value(o) for o in ops)

    for inst in block.insts:
        for d in inst.defs:
            assert d.is_reg
        if isinstance(inst, LoadMInstruction):
            if inst.uses[0].is_imm:
                regs[inst.defs[0].reg_no] = inst.uses[0].val
            else:
                regs[inst.defs[0].reg_no] = mem[address(inst.uses)]
        elif isinstance(inst, StoreMInstruction):
            mem[address(inst.uses[1:])] = value(inst.uses[0])
        elif isinstance(inst, MovMInstruction):
            regs[inst.defs[0].reg_no] = value(inst.uses[0])
        elif isinstance(inst, BinaryMInstruction):
            assert inst.op is BinaryMInstruction.Op.ADD
            regs[inst.defs[0].reg_no] = value(inst.uses[0]) + value(inst.uses[1])
    return regs


def _all_operands(func):
    for block in func.blocks:
        for inst in block.insts:
            yield from inst.defs
            yield from inst.uses


def test_interval_defaults():
    iv = Interval(3, 9)
    assert (iv.spill, iv.disp, iv.rreg) == (False, 0, 0)
    assert iv.defs == set() and iv.uses == set()


def test_simple_allocation_without_spill():
    unit, func, block = _unit_with_block()
    _pressure_program(block, 3)
    LinearScan(unit).allocate_registers()
    assert not any(op.is_vreg for op in _all_operands(func))
    assert func.stack_size == 0
    assert func.saved_regs <= set(ALLOCATABLE_REGS)
    assert _run(block)[0] == sum(range(1, 4))


def test_values_across_blocks_get_registers():
    unit, func, b1 = _unit_with_block()
    b2 = MachineBlock(func, 2)
    func.insert_block(b2)
    b1.insert_inst(LoadMInstruction(b1, _vreg(500), _imm(42)))
    b1.insert_inst(
        BranchMInstruction(b1, BranchMInstruction.Op.B, MachineOperand(OperandKind.LABEL, label=".L2"))
    )
    use = _vreg(500)
    b2.insert_inst(MovMInstruction(b2, MovMInstruction.Op.MOV, _reg(0), use))
    b1.succs.append(b2)
    b2.preds.append(b1)
    LinearScan(unit).allocate_registers()
    defined = b1.insts[0].defs[0]
    assert defined.is_reg and use.is_reg
    assert defined.reg_no == use.reg_no
    assert defined.reg_no in ALLOCATABLE_REGS
    assert func.saved_regs == {defined.reg_no}


def test_register_pressure_causes_spill_and_keeps_values():
    unit, func, block = _unit_with_block()
    count = len(ALLOCATABLE_REGS) + 1
    _pressure_program(block, count)
    LinearScan(unit).allocate_registers()
    assert not any(op.is_vreg for op in _all_operands(func))
    assert func.stack_size > 0
    assert func.stack_size % 4 == 0
    assert any(isinstance(i, StoreMInstruction) for i in block.insts)
    assert func.saved_regs <= set(ALLOCATABLE_REGS)
    assert _run(block)[0] == sum(range(1, count + 1))


def test_far_spill_slot_uses_register_offset():
    unit, func, block = _unit_with_block()
    func.stack_size = 300
    count = len(ALLOCATABLE_REGS) + 1
    _pressure_program(block, count)
    LinearScan(unit).allocate_registers()
    assert not any(op.is_vreg for op in _all_operands(func))
    far_loads = [
        i for i in block.insts
        if isinstance(i, LoadMInstruction) and i.uses[0].is_imm and i.uses[0].val < -255
    ]
    assert far_loads
    stores = [i for i in block.insts if isinstance(i, StoreMInstruction)]
    assert stores and all(s.uses[2].is_reg for s in stores)
    assert _run(block)[0] == sum(range(1, count + 1))