# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Main Query class with method chaining for LinkAlchemy.
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Type, Union, TypeVar, Tuple, Iterator, Generic
)
import logging

from .constants import ErrorMessages
from .link_orm import get_metadata
from .link_query_builder import QueryState, JoinClause, SQLQueryBuilder
from .link_query_expressions import ColumnRef, Eq, FilterExpression, Not, OrderDirection
from .link_schema import Schema, parse_schema

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from .link_session import LinkSession

ModelType = TypeVar("ModelType")


class Query(Generic[ModelType]):
    """
    Chainable query over one table.

    A query built for a model class maps rows to model instances; one built for a
    bare table name (a join table, for instance) returns rows as dicts.
    """

    def __init__(
        self,
        target: Union[Type[ModelType], str],
        session: Optional["LinkSession"] = None,
    ):
        """Initialize query for a model class or a table name."""
        if isinstance(target, str):
            self._schema: Optional[Schema] = None
            self._state = QueryState(table_name=target)
        else:
            self._schema = parse_schema(target)
            self._state = QueryState(table_name=self._schema.table_name, model_class=target)
        self._session = session

    @property
    def table_name(self) -> str:
        return self._state.table_name

    @property
    def is_unscoped(self) -> bool:
        return self._state.unscoped

    def _copy_with_state(self, **kwargs) -> Query:
        """Create a new Query with updated state."""
        new_query = Query.__new__(Query)
        new_query._state = self._state.copy(**kwargs)
        new_query._schema = self._schema
        new_query._session = self._session
        return new_query

    def filter(self, *expressions: FilterExpression) -> Query:
        """Add filter expressions to the query."""
        new_filters = list(self._state.filters)
        new_filters.extend(expressions)
        return self._copy_with_state(filters=new_filters)

    def where(self, *expressions: FilterExpression) -> Query:
        """Alias for filter()."""
        return self.filter(*expressions)

    def filter_by(self, **kwargs) -> Query:
        """Filter by field equality conditions."""
        expressions = [Eq(ColumnRef(self._column_for(name), self.table_name), value) for name, value in kwargs.items()]
        return self.filter(*expressions)

    def exclude(self, *expressions: FilterExpression) -> Query:
        """Add negated filter expressions."""
        return self.filter(*(Not(e) for e in expressions))

    def join(self, table: str, *on: FilterExpression, is_outer: bool = False) -> Query:
        """Join another table on the given conditions."""
        new_joins = list(self._state.joins)
        new_joins.append(JoinClause(table=table, on=list(on), is_outer=is_outer))
        return self._copy_with_state(joins=new_joins)

    def unscoped(self) -> Query:
        """Skip default filters (join table filters) when this query is used by an association."""
        return self._copy_with_state(unscoped=True)

    def order_by(self, *fields: Union[str, Tuple[str, OrderDirection]]) -> Query:
        """Add ordering to the query."""
        new_order = list(self._state.order_by)

        for field in fields:
            if isinstance(field, str):
                if field.startswith("-"):
                    new_order.append((self._column_for(field[1:]), OrderDirection.DESC))
                else:
                    new_order.append((self._column_for(field), OrderDirection.ASC))
            elif isinstance(field, tuple) and len(field) == 2:
                new_order.append((self._column_for(field[0]), OrderDirection(field[1])))
            else:
                raise ValueError(ErrorMessages.INVALID_ORDER_BY_ARGUMENT.format(argument=field))

        return self._copy_with_state(order_by=new_order)

    def limit(self, count: int) -> Query:
        """Limit the number of results."""
        return self._copy_with_state(limit_value=count)

    def offset(self, count: int) -> Query:
        """Offset the results."""
        return self._copy_with_state(offset_value=count)

    def _column_for(self, name: str) -> str:
        if self._schema is not None and name in self._schema.fields:
            column = self._schema.fields[name].column
            if column is not None:
                return column
        return name

    def _builder(self) -> SQLQueryBuilder:
        return SQLQueryBuilder(self._state, get_metadata().tables)

    def to_statement(self) -> Any:
        """Build the SELECT statement of this query."""
        return self._builder().build_select()

    def _execute(self, statement: Any) -> Any:
        """Execute a statement on the attached session."""
        if not self._session:
            raise RuntimeError(ErrorMessages.NO_SESSION)
        return self._session.execute(statement)

    def all(self) -> Union[List[ModelType], List[Dict[str, Any]]]:
        """Execute query and return all results."""
        result = self._execute(self.to_statement())
        return self._map_results(result.mappings().all())

    def first(self) -> Union[ModelType, Dict[str, Any], None]:
        """Execute query and return first result."""
        results = self.limit(1).all()
        return results[0] if results else None

    def one(self) -> Union[ModelType, Dict[str, Any]]:
        """Execute query and return exactly one result."""
        results = self.limit(2).all()
        if len(results) == 0:
            raise ValueError(ErrorMessages.NO_RESULTS)
        if len(results) > 1:
            raise ValueError(ErrorMessages.MULTIPLE_RESULTS)
        return results[0]

    def exists(self) -> bool:
        """Check if any results exist."""
        return self.first() is not None

    def count(self) -> int:
        """Count matching rows without materializing them."""
        result = self._execute(self._builder().build_count())
        return int(result.scalar_one())

    def update_columns(self, values: Mapping[str, Any]) -> int:
        """Update columns of every matching row; returns the affected row count."""
        columns = {self._column_for(k): v for k, v in values.items()}
        result = self._execute(self._builder().build_update(columns))
        return result.rowcount

    def delete(self) -> int:
        """Delete every matching row; returns the affected row count."""
        result = self._execute(self._builder().build_delete())
        return result.rowcount

    def _map_results(self, rows: List[Mapping[str, Any]]) -> Union[List[ModelType], List[Dict[str, Any]]]:
        if self._schema is None:
            return [dict(row) for row in rows]
        return [self._schema.from_row(row) for row in rows]

    def __iter__(self) -> Iterator[Union[ModelType, Dict[str, Any]]]:
        """Iterate over query results."""
        return iter(self.all())

    def __repr__(self) -> str:
        """String representation of the query."""
        return f"<Query({self.table_name}): {len(self._state.filters)} filter(s), {len(self._state.joins)} join(s)>"
