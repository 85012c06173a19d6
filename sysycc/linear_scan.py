"""Linear scan register allocation for machine code."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from sysycc.liveness import LiveVariableAnalysis
from sysycc.machine import (
    FP,
    LoadMInstruction,
    MachineFunction,
    MachineOperand,
    MachineUnit,
    OperandKind,
    StoreMInstruction,
)
from sysycc.symbols import next_label

ALLOCATABLE_REGS = tuple(range(4, 11))


@dataclass(eq=False)
class Interval:
    """The live range of a virtual register."""

    start: int
    end: int
    spill: bool = False
    disp: int = 0
    rreg: int = 0
    defs: set[MachineOperand] = field(default_factory=set)
    uses: set[MachineOperand] = field(default_factory=set)


def _index_of(items: list, item: object) -> int:
    for i, x in enumerate(items):
        if x is item:
            return i
    raise ValueError("instruction is not in its block")


class LinearScan:
    """Maps the virtual registers of a machine unit onto r4-r10."""

    def __init__(self, unit: MachineUnit) -> None:
        self.unit = unit
        self.regs: list[int] = list(ALLOCATABLE_REGS)
        self.du_chains: dict[MachineOperand, set[MachineOperand]] = {}
        self.intervals: list[Interval] = []
        self.actives: list[Interval] = []
        self._func: MachineFunction | None = None

    def allocate_registers(self) -> None:
        """Allocate every function, spilling until all intervals fit."""
        for func in self.unit.funcs:
            self._func = func
            while True:
                self._compute_live_intervals()
                if self._linear_scan():
                    self._modify_code()
                    break
                self._gen_spill_code()

    def _make_du_chains(self) -> None:
        func = self._func
        lva = LiveVariableAnalysis()
        lva.analyze(func)
        self.du_chains = {}
        counter = 0
        for block in func.blocks:
            live: dict[tuple, set[MachineOperand]] = {}
            for t in block.live_out:
                live.setdefault(t.key(), set()).add(t)
            counter += len(block.insts)
            no = counter
            for inst in reversed(block.insts):
                inst.no = no
                no -= 1
                for d in inst.defs:
                    if d.is_vreg:
                        uses = live.setdefault(d.key(), set())
                        self.du_chains.setdefault(d, set()).update(uses)
                        kill = lva.all_uses.get(d.key(), set())
                        live[d.key()] = uses - kill
                for u in inst.uses:
                    if u.is_vreg:
                        live.setdefault(u.key(), set()).add(u)

    def _compute_live_intervals(self) -> None:
        self._make_du_chains()
        func = self._func
        self.intervals = []
        for d, uses in self.du_chains.items():
            end = max((u.parent.no for u in uses), default=-1)
            self.intervals.append(
                Interval(d.parent.no, end, defs={d}, uses=set(uses))
            )
        for interval in self.intervals:
            uses = interval.uses
            begin, end = interval.start, interval.end
            first_use = next(iter(uses), None)
            for block in func.blocks:
                if not block.insts:
                    continue
                live_in = any(u in block.live_in for u in uses)
                live_out = any(u in block.live_out for u in uses)
                if live_in and live_out:
                    begin = min(begin, block.insts[0].no)
                    end = max(end, block.insts[-1].no)
                elif live_out:
                    for inst in block.insts:
                        if inst.defs and inst.defs[0] is first_use:
                            begin = min(begin, inst.no)
                            break
                    end = max(end, block.insts[-1].no)
                elif live_in:
                    begin = min(begin, block.insts[0].no)
                    last = max(
                        (u.parent.no for u in uses if u.parent.parent is block),
                        default=0,
                    )
                    end = max(last, end)
            interval.start, interval.end = begin, end
        self._merge_intervals()
        self.intervals.sort(key=lambda iv: iv.start)

    def _merge_intervals(self) -> None:
        changed = True
        while changed:
            changed = False
            snapshot = list(self.intervals)
            for i, w1 in enumerate(snapshot):
                for w2 in snapshot[i + 1:]:
                    if next(iter(w1.defs)).key() != next(iter(w2.defs)).key():
                        continue
                    if not (w1.uses & w2.uses):
                        continue
                    changed = True
                    w1.defs |= w2.defs
                    w1.uses |= w2.uses
                    low = min(w1.start, w1.end, w2.start, w2.end)
                    high = max(w1.start, w1.end, w2.start, w2.end)
                    w1.start, w1.end = low, high
                    for k, iv in enumerate(self.intervals):
                        if iv is w2:
                            del self.intervals[k]
                            break

    def _linear_scan(self) -> bool:
        success = True
        self.actives = []
        self.regs = list(ALLOCATABLE_REGS)
        for interval in self.intervals:
            self._expire_old_intervals(interval)
            if not self.regs:
                self._spill_at_interval(interval)
                success = False
            else:
                interval.rreg = self.regs.pop(0)
                self.actives.append(interval)
                self.actives.sort(key=lambda iv: iv.end)
        return success

    def _expire_old_intervals(self, interval: Interval) -> None:
        while self.actives:
            active = self.actives[0]
            if active.end >= interval.start:
                return
            self.regs.append(active.rreg)
            self.regs.sort()
            self.actives.pop(0)

    def _spill_at_interval(self, interval: Interval) -> None:
        active = self.actives[-1]
        if active.end > interval.end:
            active.spill = True
            interval.rreg = active.rreg
            self._func.add_saved_reg(interval.rreg)
            self.actives.append(interval)
            self.actives.sort(key=lambda iv: iv.end)
        else:
            interval.spill = True

    def _modify_code(self) -> None:
        for interval in self.intervals:
            self._func.add_saved_reg(interval.rreg)
            for d in interval.defs:
                d.set_reg(interval.rreg)
            for u in interval.uses:
                u.set_reg(interval.rreg)

    def _gen_spill_code(self) -> None:
        func = self._func
        for interval in self.intervals:
            if not interval.spill:
                continue
            interval.disp = -func.alloc_space(4)
            off = MachineOperand(OperandKind.IMM, interval.disp)
            fp = MachineOperand(OperandKind.REG, FP)
            far = not -255 <= interval.disp <= 255
            for use in interval.uses:
                temp = copy.copy(use)
                inst = use.parent
                block = inst.parent
                idx = _index_of(block.insts, inst)
                if far:
                    disp_reg = MachineOperand(OperandKind.VREG, next_label())
                    load_off = LoadMInstruction(block, disp_reg, off)
                    load = LoadMInstruction(block, temp, fp, copy.copy(disp_reg))
                    block.insts[idx:idx] = [load_off, load]
                else:
                    block.insts.insert(idx, LoadMInstruction(block, temp, fp, off))
            for d in interval.defs:
                temp = copy.copy(d)
                inst = d.parent
                block = inst.parent
                idx = _index_of(block.insts, inst) + 1
                if far:
                    disp_reg = MachineOperand(OperandKind.VREG, next_label())
                    load_off = LoadMInstruction(block, disp_reg, off)
                    store = StoreMInstruction(block, temp, fp, copy.copy(disp_reg))
                    block.insts[idx:idx] = [load_off, store]
                else:
                    block.insts.insert(idx, StoreMInstruction(block, temp, fp, off))