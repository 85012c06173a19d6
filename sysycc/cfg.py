"""Basic blocks, functions and compilation units of the IR."""

from __future__ import annotations

from collections import deque
from typing import Any, Iterator, TextIO

from sysycc.operand import Operand
from sysycc.symbols import SymbolEntry, next_label


class BasicBlock:
    """A straight-line run of instructions with its CFG edges."""

    def __init__(self, func: Function) -> None:
        self.no = next_label()
        func.insert_block(self)
        self.parent = func
        self.preds: list[BasicBlock] = []
        self.succs: list[BasicBlock] = []
        self._insts: list[Any] = []

    def __repr__(self) -> str:
        return f"<BasicBlock B{self.no}>"

    def __iter__(self) -> Iterator[Any]:
        return iter(tuple(self._insts))

    def __len__(self) -> int:
        return len(self._insts)

    @property
    def instructions(self) -> list[Any]:
        return list(self._insts)

    @property
    def empty(self) -> bool:
        return not self._insts

    @property
    def first(self) -> Any:
        return self._insts[0] if self._insts else None

    @property
    def last(self) -> Any:
        return self._insts[-1] if self._insts else None

    def insert_front(self, inst: Any) -> None:
        """Put ``inst`` at the start of the block."""
        self._insts.insert(0, inst)
        inst.parent = self

    def insert_back(self, inst: Any) -> None:
        """Put ``inst`` at the end of the block."""
        self._insts.append(inst)
        inst.parent = self

    def insert_before(self, inst: Any, before: Any) -> None:
        """Put ``inst`` right before ``before``, which must be in this block."""
        index = next((i for i, x in enumerate(self._insts) if x is before), None)
        if index is None:
            raise ValueError("instruction is not in this block")
        self._insts.insert(index, inst)
        inst.parent = self

    def remove(self, inst: Any) -> None:
        """Take ``inst`` out of the block."""
        index = next((i for i, x in enumerate(self._insts) if x is inst), None)
        if index is None:
            raise ValueError("instruction is not in this block")
        del self._insts[index]

    def add_succ(self, block: BasicBlock) -> None:
        self.succs.append(block)

    def remove_succ(self, block: BasicBlock) -> None:
        self.succs.remove(block)

    def add_pred(self, block: BasicBlock) -> None:
        self.preds.append(block)

    def remove_pred(self, block: BasicBlock) -> None:
        self.preds.remove(block)

    def output(self, out: TextIO) -> None:
        """Write the block as textual IR; empty blocks write nothing."""
        if self.empty:
            return
        out.write(f"B{self.no}:")
        if self.preds:
            labels = ", ".join(f"%B{p.no}" for p in self.preds)
            out.write(f"{'':>31}\t; preds = {labels}")
        out.write("\n")
        for inst in self._insts:
            inst.output(out)


class Function:
    """A function body as a list of basic blocks."""

    def __init__(self, unit: Unit, symbol: SymbolEntry) -> None:
        unit.insert_func(self)
        self.blocks: list[BasicBlock] = []
        self.symbol = symbol
        self.parent = unit
        self.params: list[Operand] = []
        self.entry = BasicBlock(self)

    def __repr__(self) -> str:
        return f"<Function {self.symbol}>"

    def __iter__(self) -> Iterator[BasicBlock]:
        return iter(tuple(self.blocks))

    def insert_block(self, block: BasicBlock) -> None:
        self.blocks.append(block)

    def remove(self, block: BasicBlock) -> None:
        """Take ``block`` out of the function."""
        self.blocks.remove(block)

    def output(self, out: TextIO) -> None:
        """Write the function, visiting blocks breadth-first from the entry."""
        ret_type = self.symbol.type.return_type
        params = ",".join(f"i32 {p}" for p in self.params)
        out.write(f"define {ret_type} {self.symbol}({params}){{\n")
        seen = {id(self.entry)}
        queue = deque([self.entry])
        while queue:
            block = queue.popleft()
            block.output(out)
            for succ in block.succs:
                if id(succ) not in seen:
                    seen.add(id(succ))
                    queue.append(succ)
        out.write("}\n")


class Unit:
    """A compilation unit: the list of functions."""

    def __init__(self) -> None:
        self.funcs: list[Function] = []

    def __iter__(self) -> Iterator[Function]:
        return iter(tuple(self.funcs))

    def insert_func(self, func: Function) -> None:
        self.funcs.append(func)

    def remove_func(self, func: Function) -> None:
        self.funcs.remove(func)

    def output(self, out: TextIO) -> None:
        """Write every function in order."""
        for func in self.funcs:
            func.output(out)