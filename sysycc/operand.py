"""Operands of IR instructions."""

from __future__ import annotations

from typing import Any

from sysycc.symbols import SymbolEntry
from sysycc.typesys import Type


class Operand:
    """A value in the IR, with the instruction defining it and those using it."""

    __slots__ = ("entry", "def_inst", "uses")

    def __init__(self, entry: SymbolEntry) -> None:
        self.entry = entry
        self.def_inst: Any = None
        self.uses: list[Any] = []

    @property
    def type(self) -> Type:
        return self.entry.type

    @property
    def use_count(self) -> int:
        return len(self.uses)

    def add_use(self, inst: Any) -> None:
        """Record ``inst`` as a user of this operand."""
        self.uses.append(inst)

    def remove_use(self, inst: Any) -> None:
        """Forget one use by ``inst``; nothing happens if it is not a user."""
        try:
            self.uses.remove(inst)
        except ValueError:
            pass

    def __str__(self) -> str:
        return str(self.entry)

    def __repr__(self) -> str:
        return f"<Operand {self.entry}>"