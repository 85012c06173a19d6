from sysycc.liveness import LiveVariableAnalysis
from sysycc.machine import (
    BinaryMInstruction,
    BranchMInstruction,
    LoadMInstruction,
    MachineBlock,
    MachineFunction,
    MachineOperand,
    MachineUnit,
    MovMInstruction,
    OperandKind,
)
from sysycc.symbols import IdentifierSymbolEntry, Scope
from sysycc.typesys import INT_TYPE, FunctionType


def _func(unit, name="main"):
    sym = IdentifierSymbolEntry(FunctionType(INT_TYPE, []), name, Scope.GLOBAL)
    func = MachineFunction(unit, sym)
    unit.insert_func(func)
    return func


def _vreg(n):
    return MachineOperand(OperandKind.VREG, n)


def _label(text):
    return MachineOperand(OperandKind.LABEL, label=text)


def _two_blocks():
    unit = MachineUnit()
    func = _func(unit)
    b1 = MachineBlock(func, 1)
    b2 = MachineBlock(func, 2)
    func.insert_block(b1)
    func.insert_block(b2)
    b1.insert_inst(LoadMInstruction(b1, _vreg(1), MachineOperand(OperandKind.IMM, 5)))
    b1.insert_inst(BranchMInstruction(b1, BranchMInstruction.Op.B, _label(".L2")))
    use = _vreg(1)
    b2.insert_inst(
        MovMInstruction(b2, MovMInstruction.Op.MOV, MachineOperand(OperandKind.REG, 0), use)
    )
    b1.succs.append(b2)
    b2.preds.append(b1)
    return unit, func, b1, b2, use


def test_use_is_live_into_successor_and_out_of_definer():
    _, func, b1, b2, use = _two_blocks()
    LiveVariableAnalysis().analyze(func)
    assert use in b2.live_in
    assert use in b1.live_out
    assert use not in b1.live_in
    assert b2.live_out == set()


def test_all_uses_groups_by_value():
    _, func, _, _, use = _two_blocks()
    lva = LiveVariableAnalysis()
    lva.analyze(func)
    assert lva.all_uses[use.key()] == {use}


def test_loop_keeps_value_live_around_back_edge():
    unit = MachineUnit()
    func = _func(unit)
    b1 = MachineBlock(func, 1)
    b2 = MachineBlock(func, 2)
    func.insert_block(b1)
    func.insert_block(b2)
    b1.insert_inst(LoadMInstruction(b1, _vreg(1), MachineOperand(OperandKind.IMM, 0)))
    u1, u2 = _vreg(1), _vreg(1)
    b2.insert_inst(BinaryMInstruction(b2, BinaryMInstruction.Op.ADD, _vreg(2), u1, u2))
    u3 = _vreg(2)
    b2.insert_inst(MovMInstruction(b2, MovMInstruction.Op.MOV, _vreg(1), u3))
    b2.insert_inst(BranchMInstruction(b2, BranchMInstruction.Op.B, _label(".L2")))
    b1.succs.append(b2)
    b2.succs.append(b2)
    LiveVariableAnalysis().analyze(func)
    assert {u1, u2} <= b2.live_in
    assert {u1, u2} <= b2.live_out
    assert {u1, u2} <= b1.live_out
    assert u3 not in b2.live_in


def test_analyze_unit_covers_every_function():
    unit = MachineUnit()
    uses = []
    blocks = []
    for name in ("f", "g"):
        func = _func(unit, name)
        entry = MachineBlock(func, len(blocks) * 2 + 1)
        tail = MachineBlock(func, len(blocks) * 2 + 2)
        func.insert_block(entry)
        func.insert_block(tail)
        entry.insert_inst(
            LoadMInstruction(entry, _vreg(7), MachineOperand(OperandKind.IMM, 1))
        )
        use = _vreg(7)
        tail.insert_inst(
            MovMInstruction(tail, MovMInstruction.Op.MOV, MachineOperand(OperandKind.REG, 0), use)
        )
        entry.succs.append(tail)
        uses.append(use)
        blocks.append((entry, tail))
    lva = LiveVariableAnalysis()
    lva.analyze_unit(unit)
    for use, (entry, tail) in zip(uses, blocks):
        assert use in tail.live_in
        assert use in entry.live_out
    assert lva.all_uses[uses[0].key()] == set(uses)