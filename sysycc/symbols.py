"""Symbol entries and scoped symbol tables."""

from __future__ import annotations

import abc
import enum
import itertools
from typing import TYPE_CHECKING, Any

from sysycc.typesys import Type

if TYPE_CHECKING:
    from sysycc.operand import Operand

_labels = itertools.count()


def next_label() -> int:
    """Return a fresh label number, shared by temporaries and blocks."""
    return next(_labels)


class Scope(enum.IntEnum):
    """Where an identifier lives; deeper local scopes are larger numbers."""

    GLOBAL = 0
    PARAM = 1
    LOCAL = 2


class _Kind(enum.Enum):
    CONSTANT = enum.auto()
    VARIABLE = enum.auto()
    TEMPORARY = enum.auto()


class SymbolEntry(abc.ABC):
    """Something an operand can stand for."""

    def __init__(self, type: Type, kind: _Kind) -> None:
        self.type = type
        self._kind = kind
        self.next: SymbolEntry | None = None

    @property
    def is_constant(self) -> bool:
        return self._kind is _Kind.CONSTANT

    @property
    def is_temporary(self) -> bool:
        return self._kind is _Kind.TEMPORARY

    @property
    def is_variable(self) -> bool:
        return self._kind is _Kind.VARIABLE

    @abc.abstractmethod
    def __str__(self) -> str:
        """The entry as written in the textual IR."""

    def append(self, entry: SymbolEntry) -> None:
        """Attach ``entry`` at the end of this entry's chain."""
        tail = self
        while tail.next is not None:
            tail = tail.next
        tail.next = entry


class ConstantSymbolEntry(SymbolEntry):
    """A literal integer constant."""

    def __init__(self, type: Type, value: int = 0) -> None:
        super().__init__(type, _Kind.CONSTANT)
        self.value = value

    def __str__(self) -> str:
        return str(self.value)

    def __repr__(self) -> str:
        return f"<ConstantSymbolEntry {self.value}>"


class IdentifierSymbolEntry(SymbolEntry):
    """A named variable, constant, parameter or function."""

    def __init__(self, type: Type, name: str, scope: int, param_no: int = -1) -> None:
        super().__init__(type, _Kind.VARIABLE)
        self.name = name
        self.scope = int(scope)
        self.param_no = param_no
        self.addr: Operand | None = None
        self.constant = False
        self.inited = False
        self.value = 0
        self.array_value: list[int] | None = None
        self.all_zero = False
        self.not_zero_num = 0

    @property
    def is_global(self) -> bool:
        return self.scope == Scope.GLOBAL

    @property
    def is_param(self) -> bool:
        return self.scope == Scope.PARAM

    @property
    def is_local(self) -> bool:
        return self.scope >= Scope.LOCAL

    def __str__(self) -> str:
        if self.type.is_func:
            return "@" + self.name
        return self.name

    def __repr__(self) -> str:
        return f"<IdentifierSymbolEntry {self.name} scope={self.scope}>"


class TemporarySymbolEntry(SymbolEntry):
    """A compiler-made temporary value."""

    def __init__(self, type: Type, label: int, param_no: int = -1) -> None:
        super().__init__(type, _Kind.TEMPORARY)
        self.label = label
        self.param_no = param_no
        self.offset = 0

    def __str__(self) -> str:
        return f"%t{self.label}"

    def __repr__(self) -> str:
        return f"<TemporarySymbolEntry {self}>"


class SymbolTable:
    """One scope of identifiers, chained to the enclosing scope."""

    def __init__(self, prev: SymbolTable | None = None) -> None:
        self.prev = prev
        self.level = 0 if prev is None else prev.level + 1
        self._entries: dict[str, Any] = {}

    def install(self, name: str, entry: SymbolEntry) -> None:
        """Bind ``name`` in this scope."""
        self._entries[name] = entry

    def lookup(self, name: str) -> SymbolEntry | None:
        """Find ``name`` here or in an enclosing scope."""
        table: SymbolTable | None = self
        while table is not None:
            if name in table._entries:
                return table._entries[name]
            table = table.prev
        return None

    def lookup_current(self, name: str) -> SymbolEntry | None:
        """Find ``name`` in this scope only."""
        return self._entries.get(name)

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None