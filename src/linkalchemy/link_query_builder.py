# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Query state management and SQL statement builder for LinkAlchemy.
"""

from __future__ import annotations
from typing import Any, Optional, Type, Dict, List, Mapping, Tuple
import copy
import logging
from dataclasses import dataclass, field

from sqlalchemy import Table, delete, func, select, update, and_
from sqlalchemy.sql import Delete, Select, Update
from sqlalchemy.sql.elements import ColumnElement

from .constants import ErrorMessages
from .exceptions import SchemaError, StoreError
from .link_query_expressions import ColumnRef, FilterExpression, OrderDirection

logger = logging.getLogger(__name__)


@dataclass
class JoinClause:
    """Represents a join against another table."""
    table: str
    on: List[FilterExpression] = field(default_factory=list)
    is_outer: bool = False


@dataclass
class QueryState:
    """Immutable state for query building."""
    table_name: str
    model_class: Optional[Type[Any]] = None
    filters: List[FilterExpression] = field(default_factory=list)
    joins: List[JoinClause] = field(default_factory=list)
    order_by: List[Tuple[str, OrderDirection]] = field(default_factory=list)
    limit_value: Optional[int] = None
    offset_value: Optional[int] = None
    unscoped: bool = False

    def copy(self, **kwargs) -> QueryState:
        """Create a copy with updated fields."""
        new_state = copy.copy(self)
        for key, value in kwargs.items():
            if not hasattr(new_state, key):
                valid_fields = [attr for attr in dir(new_state) if not attr.startswith('_') and not callable(getattr(new_state, attr))]
                raise ValueError(
                    f"Cannot update non-existent field '{key}' in QueryState. "
                    f"Valid fields are: {', '.join(valid_fields)}"
                )
            if key in ('filters', 'joins', 'order_by'):
                value = list(value) if value else []
            setattr(new_state, key, value)
        return new_state


class SQLQueryBuilder:
    """Builds SQLAlchemy Core statements from QueryState."""

    def __init__(self, state: QueryState, tables: Mapping[str, Table]):
        self.state = state
        self.tables = tables

    def table(self, name: str) -> Table:
        table = self.tables.get(name)
        if table is None:
            raise SchemaError(ErrorMessages.TABLE_NOT_FOUND.format(table_name=name))
        return table

    def resolve(self, ref: ColumnRef) -> ColumnElement:
        """Resolve a column reference; unqualified names belong to the queried table."""
        table = self.table(ref.table or self.state.table_name)
        if ref.name not in table.c:
            raise SchemaError(ErrorMessages.COLUMN_NOT_FOUND.format(column=ref.name, table_name=table.name))
        return table.c[ref.name]

    def _compile(self, expressions: List[FilterExpression]) -> List[ColumnElement]:
        return [e.to_sqlalchemy(self.resolve) for e in expressions]

    def _from_clause(self) -> Any:
        from_clause: Any = self.table(self.state.table_name)
        for join in self.state.joins:
            onclause = and_(*self._compile(join.on))
            from_clause = from_clause.join(self.table(join.table), onclause, isouter=join.is_outer)
        return from_clause

    def _require_where(self, operation: str) -> List[ColumnElement]:
        if not self.state.filters:
            raise StoreError(ErrorMessages.WHERE_REQUIRED.format(operation=operation, table=self.state.table_name))
        return self._compile(self.state.filters)

    def build_select(self) -> Select:
        base = self.table(self.state.table_name)
        stmt = select(*base.c).select_from(self._from_clause())
        where = self._compile(self.state.filters)
        if where:
            stmt = stmt.where(*where)
        for column, direction in self.state.order_by:
            col = self.resolve(ColumnRef.parse(column))
            stmt = stmt.order_by(col.desc() if direction == OrderDirection.DESC else col.asc())
        if self.state.limit_value is not None:
            stmt = stmt.limit(self.state.limit_value)
        if self.state.offset_value is not None:
            stmt = stmt.offset(self.state.offset_value)
        return stmt

    def build_count(self) -> Select:
        stmt = select(func.count()).select_from(self._from_clause())
        where = self._compile(self.state.filters)
        if where:
            stmt = stmt.where(*where)
        return stmt

    def build_update(self, values: Dict[str, Any]) -> Update:
        where = self._require_where("update")
        return update(self.table(self.state.table_name)).where(*where).values(values)

    def build_delete(self) -> Delete:
        where = self._require_where("delete")
        return delete(self.table(self.state.table_name)).where(*where)
