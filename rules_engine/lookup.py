"""
Nested lookup tables for rule thresholds.

Rule bodies read parameterized thresholds with chained indexing, e.g.
lookup["Default"]["FTB"]["MinLoan"].as_int(). Navigation never raises for
unknown keys: a missing child is created empty on first access and coerces
to the zero value of whatever kind is requested.

Because every distinct key ever queried is materialized, a NestedLookup is
not suitable for untrusted or unbounded key spaces.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Hashable, Iterable, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from rules_engine.exceptions import LookupCoercionError

RawValue = Union[bool, int, float, Decimal, str]


class LookupValueKind(str, Enum):
    """The closed set of value kinds a lookup node can hold."""

    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    DECIMAL = "DECIMAL"
    BOOLEAN = "BOOLEAN"
    STRING = "STRING"


_ZERO_VALUES: Dict[LookupValueKind, RawValue] = {
    LookupValueKind.INTEGER: 0,
    LookupValueKind.FLOAT: 0.0,
    LookupValueKind.DECIMAL: Decimal(0),
    LookupValueKind.BOOLEAN: False,
}


class LookupValue(BaseModel):
    """A typed value stored on a lookup node."""

    kind: LookupValueKind
    raw: RawValue

    model_config = ConfigDict(frozen=True)

    @classmethod
    def of(cls, raw: Any) -> "LookupValue":
        """
        Wrap a raw Python value.

        Raises:
            ValueError: If raw is None
            TypeError: If raw is not a bool, int, float, Decimal or str
        """
        if raw is None:
            raise ValueError("Value cannot be None.")
        if isinstance(raw, LookupValue):
            return raw
        # bool before int: bool is an int subclass
        if isinstance(raw, bool):
            return cls(kind=LookupValueKind.BOOLEAN, raw=raw)
        if isinstance(raw, int):
            return cls(kind=LookupValueKind.INTEGER, raw=raw)
        if isinstance(raw, float):
            return cls(kind=LookupValueKind.FLOAT, raw=raw)
        if isinstance(raw, Decimal):
            return cls(kind=LookupValueKind.DECIMAL, raw=raw)
        if isinstance(raw, str):
            return cls(kind=LookupValueKind.STRING, raw=raw)
        raise TypeError(f"Unsupported lookup value type: {type(raw).__name__}")

    def coerce_to(self, kind: LookupValueKind) -> RawValue:
        """
        Convert the stored value to the requested kind.

        Raises:
            LookupCoercionError: If the stored kind cannot be converted
        """
        if kind == LookupValueKind.STRING:
            if self.kind != LookupValueKind.STRING:
                raise LookupCoercionError(f"Cannot convert {self.kind.value} to STRING")
            return self.raw

        if self.kind == LookupValueKind.STRING:
            raise LookupCoercionError(f"Cannot convert STRING to {kind.value}")

        raw = self.raw
        if kind == LookupValueKind.BOOLEAN:
            return bool(raw)
        if kind == LookupValueKind.FLOAT:
            return float(raw)
        if kind == LookupValueKind.DECIMAL:
            if isinstance(raw, Decimal):
                return raw
            if isinstance(raw, float):
                return Decimal(str(raw))
            return Decimal(int(raw))

        # INTEGER: only lossless conversions
        if isinstance(raw, (bool, int)):
            return int(raw)
        if isinstance(raw, Decimal):
            integral = raw == raw.to_integral_value()
        else:
            integral = float(raw).is_integer()
        if not integral:
            raise LookupCoercionError(f"Cannot convert non-integral {self.kind.value} {raw!r} to INTEGER")
        return int(raw)


class NestedLookup:
    """
    Recursive key-path value store.

    Each node holds an optional LookupValue and a mapping from key to child
    node. lookup[key] creates missing children on demand; is_defined(key)
    is a pure presence check.
    """

    def __init__(self, default_factory: Optional[Callable[[], Any]] = None):
        """
        Initialize an empty node.

        Args:
            default_factory: Produces the initial value of this node and of
                             every child created beneath it. A factory that
                             returns None leaves nodes without a value.
        """
        self._children: Dict[Hashable, "NestedLookup"] = {}
        self._default_factory = default_factory
        self._value: Optional[LookupValue] = None

        if default_factory is not None:
            initial = default_factory()
            if initial is not None:
                self._value = LookupValue.of(initial)

    @classmethod
    def from_items(
        cls,
        items: Optional[Iterable[Tuple[Sequence[Hashable], Any]]],
        default_factory: Optional[Callable[[], Any]] = None,
    ) -> "NestedLookup":
        """
        Build a lookup from (path_keys, value) pairs, inserted in order.

        Args:
            items: Pairs of a non-empty key path and the value stored at it
            default_factory: See __init__

        Raises:
            ValueError: If items is None, a path is empty, a key is None or
                        a value is None
            TypeError: If a value is not a supported kind
        """
        if items is None:
            raise ValueError("Items cannot be None.")

        lookup = cls(default_factory)
        for keys, value in list(items):
            lookup.add(keys, value)
        return lookup

    @property
    def value(self) -> Optional[LookupValue]:
        return self._value

    @property
    def has_value(self) -> bool:
        return self._value is not None

    def add(self, keys: Sequence[Hashable], value: Any) -> None:
        """
        Store value at the node addressed by keys, overwriting any existing value.

        Raises:
            ValueError: If keys is empty or None, a key is None, or value is None
        """
        keys = list(keys) if keys is not None else []
        if not keys:
            raise ValueError("Keys cannot be None or empty.")

        current = self
        for key in keys:
            if key is None:
                raise ValueError("One of the keys is None.")
            current = current[key]

        current._value = LookupValue.of(value)

    def __getitem__(self, key: Hashable) -> "NestedLookup":
        if key is None:
            raise ValueError("Key cannot be None.")

        child = self._children.get(key)
        if child is None:
            child = NestedLookup(self._default_factory)
            self._children[key] = child
        return child

    def is_defined(self, key: Hashable) -> bool:
        """Return True if a child node already exists for key."""
        if key is None:
            raise ValueError("Key cannot be None.")
        return key in self._children

    def __contains__(self, key: Hashable) -> bool:
        return self.is_defined(key)

    def keys(self):
        return self._children.keys()

    def __len__(self) -> int:
        return len(self._children)

    def coerce_to(self, kind: LookupValueKind) -> Optional[RawValue]:
        """
        Return the node value converted to kind.

        A node without a value yields the kind's zero value (None for STRING).

        Raises:
            LookupCoercionError: If the stored value cannot convert to kind
        """
        if self._value is None:
            return _ZERO_VALUES.get(kind)
        return self._value.coerce_to(kind)

    def as_int(self) -> int:
        return self.coerce_to(LookupValueKind.INTEGER)

    def as_float(self) -> float:
        return self.coerce_to(LookupValueKind.FLOAT)

    def as_decimal(self) -> Decimal:
        return self.coerce_to(LookupValueKind.DECIMAL)

    def as_bool(self) -> bool:
        return self.coerce_to(LookupValueKind.BOOLEAN)

    def as_str(self) -> Optional[str]:
        """Return the value if it is a string, otherwise None."""
        if self._value is None or self._value.kind != LookupValueKind.STRING:
            return None
        return self._value.raw

    def __int__(self) -> int:
        return self.as_int()

    def __float__(self) -> float:
        return self.as_float()

    def __repr__(self) -> str:
        raw = self._value.raw if self._value is not None else None
        return f"NestedLookup(value={raw!r}, keys={list(self._children)!r})"
