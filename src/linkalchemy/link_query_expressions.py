# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Predicate objects accepted by the query builder.

Predicates are plain data; they only become SQL when the builder compiles
them with a column resolver bound to the tables of the statement.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence, Tuple, Union

from sqlalchemy import and_, false, not_, tuple_
from sqlalchemy.sql.elements import ColumnElement


class OrderDirection(Enum):
    """Sort direction for ORDER BY."""
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class ColumnRef:
    """A column, optionally qualified by its table name."""
    name: str
    table: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.table}.{self.name}" if self.table else self.name

    @classmethod
    def parse(cls, column: str) -> "ColumnRef":
        """Parse ``"column"`` or ``"table.column"``."""
        table, _, name = column.rpartition(".")
        return cls(name=name, table=table or None)


ColumnResolver = Callable[[ColumnRef], ColumnElement]
ColumnLike = Union[ColumnRef, str]


def _as_column(column: ColumnLike) -> ColumnRef:
    if isinstance(column, ColumnRef):
        return column
    if isinstance(column, str):
        return ColumnRef.parse(column)
    raise TypeError(f"Expected a column name or ColumnRef, got {type(column).__name__}")


class FilterExpression:
    """Base class of all predicates."""

    def to_sqlalchemy(self, resolve: ColumnResolver) -> ColumnElement:
        raise NotImplementedError

    def __invert__(self) -> "Not":
        return Not(self)

    def __and__(self, other: "FilterExpression") -> "And":
        return And((self, other))


@dataclass(frozen=True)
class Eq(FilterExpression):
    """Equality; ``value`` may be another column or ``None`` (IS NULL)."""
    column: ColumnLike
    value: Any

    def __post_init__(self) -> None:
        object.__setattr__(self, "column", _as_column(self.column))

    def to_sqlalchemy(self, resolve: ColumnResolver) -> ColumnElement:
        left = resolve(self.column)
        if isinstance(self.value, ColumnRef):
            return left == resolve(self.value)
        if self.value is None:
            return left.is_(None)
        return left == self.value


@dataclass(frozen=True)
class In(FilterExpression):
    """
    Membership of one column, or of a tuple of columns, in a value set.

    An empty value set never matches; it is rendered as FALSE rather than
    dropped so that an empty source can never widen a query to every row.
    """
    column: Union[ColumnLike, Tuple[ColumnLike, ...]]
    values: Sequence[Any]

    def __post_init__(self) -> None:
        if isinstance(self.column, (tuple, list)):
            object.__setattr__(self, "column", tuple(_as_column(c) for c in self.column))
        else:
            object.__setattr__(self, "column", _as_column(self.column))
        object.__setattr__(self, "values", tuple(self.values))

    @property
    def is_composite(self) -> bool:
        return isinstance(self.column, tuple)

    def to_sqlalchemy(self, resolve: ColumnResolver) -> ColumnElement:
        if not self.values:
            return false()
        if self.is_composite:
            columns = [resolve(c) for c in self.column]
            if len(columns) == 1:
                return columns[0].in_([row[0] for row in self.values])
            return tuple_(*columns).in_([tuple(row) for row in self.values])
        return resolve(self.column).in_(list(self.values))


@dataclass(frozen=True)
class Not(FilterExpression):
    """Negation of another predicate."""
    expression: FilterExpression

    def to_sqlalchemy(self, resolve: ColumnResolver) -> ColumnElement:
        return not_(self.expression.to_sqlalchemy(resolve))


@dataclass(frozen=True)
class And(FilterExpression):
    """Conjunction of predicates."""
    expressions: Tuple[FilterExpression, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "expressions", tuple(self.expressions))

    def to_sqlalchemy(self, resolve: ColumnResolver) -> ColumnElement:
        return and_(*(e.to_sqlalchemy(resolve) for e in self.expressions))
