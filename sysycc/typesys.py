"""Types of the SysY intermediate representation."""

from __future__ import annotations

import abc
import enum


class TypeKind(enum.Enum):
    """The category a type belongs to."""

    INT = enum.auto()
    VOID = enum.auto()
    FUNC = enum.auto()
    PTR = enum.auto()
    BOOL = enum.auto()
    ARRAY = enum.auto()


class Type(abc.ABC):
    """Base of all types; ``size`` is measured in bits."""

    def __init__(self, kind: TypeKind, size: int) -> None:
        self.kind = kind
        self.size = size

    @abc.abstractmethod
    def __str__(self) -> str:
        """The type as written in the textual IR."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.kind.name} size={self.size}>"

    @property
    def is_int(self) -> bool:
        return self.kind is TypeKind.INT

    @property
    def is_void(self) -> bool:
        return self.kind is TypeKind.VOID

    @property
    def is_func(self) -> bool:
        return self.kind is TypeKind.FUNC

    @property
    def is_bool(self) -> bool:
        return self.kind is TypeKind.BOOL

    @property
    def is_ptr(self) -> bool:
        return self.kind is TypeKind.PTR

    @property
    def is_array(self) -> bool:
        return self.kind is TypeKind.ARRAY

    def same_kind(self, other: Type) -> bool:
        """True when both types are of the same category."""
        return self.kind is other.kind


class IntType(Type):
    """An integer of ``size`` bits."""

    def __init__(self, size: int, constant: bool = False) -> None:
        super().__init__(TypeKind.INT, size)
        self.constant = constant

    def __str__(self) -> str:
        return f"i{self.size}"


class VoidType(Type):
    """The type of functions that return nothing."""

    def __init__(self) -> None:
        super().__init__(TypeKind.VOID, 0)

    def __str__(self) -> str:
        return "void"


class FunctionType(Type):
    """A function signature."""

    def __init__(self, return_type: Type, params_type: list[Type] | None = None) -> None:
        super().__init__(TypeKind.FUNC, 0)
        self.return_type = return_type
        self.params_type = list(params_type or [])

    def __str__(self) -> str:
        return f"{self.return_type}()"


class PointerType(Type):
    """A pointer to ``value_type``."""

    def __init__(self, value_type: Type) -> None:
        super().__init__(TypeKind.PTR, 0)
        self.value_type = value_type

    def __str__(self) -> str:
        return f"{self.value_type}*"


class ArrayType(Type):
    """An array of ``length`` elements; a length of -1 marks an unsized parameter."""

    def __init__(self, element_type: Type, length: int, constant: bool = False) -> None:
        super().__init__(TypeKind.ARRAY, element_type.size * length)
        self.element_type = element_type
        self.length = length
        self.constant = constant
        self.array_type: Type | None = None

    def __str__(self) -> str:
        return f"[{self.length} x {self.element_type}]"


INT_TYPE = IntType(32)
BOOL_TYPE = IntType(1)
VOID_TYPE = VoidType()