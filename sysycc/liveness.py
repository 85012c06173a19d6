"""Live variable analysis over machine code."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sysycc.machine import MachineBlock, MachineFunction, MachineOperand, MachineUnit


class LiveVariableAnalysis:
    """Computes live-in and live-out sets of machine blocks.

    Operands naming the same value are grouped by ``MachineOperand.key()``;
    the sets held by blocks contain the individual use operands.
    """

    def __init__(self) -> None:
        self._all_uses: dict[tuple, set[MachineOperand]] = {}
        self._def: dict[MachineBlock, set[MachineOperand]] = {}
        self._use: dict[MachineBlock, set[MachineOperand]] = {}

    @property
    def all_uses(self) -> dict[tuple, set[MachineOperand]]:
        """Every use operand seen so far, grouped by value key."""
        return self._all_uses

    def analyze_unit(self, unit: MachineUnit) -> None:
        """Analyze every function of ``unit``."""
        for func in unit.funcs:
            self.analyze(func)

    def analyze(self, func: MachineFunction) -> None:
        """Fill the live-in and live-out sets of the blocks of ``func``."""
        self._compute_use_pos(func)
        self._compute_def_use(func)
        self._iterate(func)

    def _compute_use_pos(self, func: MachineFunction) -> None:
        for block in func.blocks:
            for inst in block.insts:
                for use in inst.uses:
                    self._all_uses.setdefault(use.key(), set()).add(use)

    def _compute_def_use(self, func: MachineFunction) -> None:
        for block in func.blocks:
            defs = self._def.setdefault(block, set())
            uses = self._use.setdefault(block, set())
            for inst in block.insts:
                uses.update(set(inst.uses) - defs)
                for d in inst.defs:
                    defs.update(self._all_uses.get(d.key(), ()))

    def _iterate(self, func: MachineFunction) -> None:
        for block in func.blocks:
            block.live_in = set()
        changed = True
        while changed:
            changed = False
            for block in func.blocks:
                live_out: set[MachineOperand] = set()
                for succ in block.succs:
                    live_out.update(succ.live_in)
                block.live_out = live_out
                old = block.live_in
                live_in = set(self._use.get(block, ()))
                live_in.update(live_out - self._def.get(block, set()))
                block.live_in = live_in
                if old != live_in:
                    changed = True