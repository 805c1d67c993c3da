# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Per-kind set reconciliation for association handles.

Each reconciler issues the store mutations that follow a save:

- ``detach_stale(values)``: after ``replace``, unlink every previously related row
  that is not among the saved members.
- ``delete(values)``: unlink exactly the rows named by ``values``.

Has-one/has-many and belongs-to unlink by nulling foreign keys; many-to-many
deletes join rows. Related rows themselves are never deleted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Sequence, Type

from .constants import ErrorMessages, LoggingConstants, RelationshipKind
from .exceptions import PrimaryKeyRequiredError
from .identity import (
    get_identity_field_values_map,
    get_identity_field_values_map_from_values,
    get_relation_values,
    to_query_values,
)
from .link_query_expressions import ColumnRef, Eq, FilterExpression, In, Not

if TYPE_CHECKING:
    from .association import Association
    from .link_schema import FieldDescriptor

logger = logging.getLogger(__name__)


class Reconciler:
    """Base class binding one association handle."""

    kind: RelationshipKind

    def __init__(self, association: "Association"):
        self.association = association
        self.relationship = association.relationship
        self.session = association.session

    def detach_stale(self, values: Sequence[Any]) -> None:
        raise NotImplementedError

    def delete(self, values: Sequence[Any]) -> None:
        raise NotImplementedError

    def _membership(self, table: str, columns: List[str], rows: List[List[Any]]) -> In:
        column, query_values = to_query_values(table, columns, rows)
        return In(column, query_values)


class BelongsToReconciler(Reconciler):
    """Foreign key on the source table."""

    kind = RelationshipKind.BELONGS_TO

    def _update_source(self, conditions: List[FilterExpression]) -> None:
        rel = self.relationship
        null_columns = {ref.foreign_key.column: None for ref in rel.references if not ref.is_pinned}
        self.session.query(rel.schema.model_class).filter(*conditions).update_columns(null_columns)

    def _source_condition(self) -> In:
        schema = self.relationship.schema
        _, source_rows = get_identity_field_values_map(self.association.source, schema.primary_fields)
        return self._membership(schema.table_name, schema.primary_field_columns, source_rows)

    def detach_stale(self, values: Sequence[Any]) -> None:
        # a non-empty replace has already overwritten the foreign key
        if values:
            return
        logger.debug(LoggingConstants.DETACH_STALE, self.relationship.name, self.relationship.schema.table_name)
        self._update_source([self._source_condition()])

    def delete(self, values: Sequence[Any]) -> None:
        rel = self.relationship
        conditions: List[FilterExpression] = [self._source_condition()]
        primary_fields: List["FieldDescriptor"] = []
        foreign_keys: List[str] = []
        for ref in rel.references:
            if ref.is_pinned:
                conditions.append(Eq(ColumnRef(ref.foreign_key.column, rel.schema.table_name), ref.primary_value))
            else:
                primary_fields.append(ref.primary_key)
                foreign_keys.append(ref.foreign_key.column)

        _, rel_rows = get_identity_field_values_map_from_values(values, primary_fields)
        conditions.append(self._membership(rel.schema.table_name, foreign_keys, rel_rows))
        self._update_source(conditions)


class HasOneReconciler(Reconciler):
    """Foreign key on the related table."""

    kind = RelationshipKind.HAS_ONE

    def _own_side(self) -> Dict[str, Any]:
        rel = self.relationship
        primary_fields: List["FieldDescriptor"] = []
        foreign_keys: List[str] = []
        pinned: List[FilterExpression] = []
        for ref in rel.references:
            if ref.own_primary_key:
                primary_fields.append(ref.primary_key)
                foreign_keys.append(ref.foreign_key.column)
            elif ref.is_pinned:
                pinned.append(Eq(ColumnRef(ref.foreign_key.column, rel.field_schema.table_name), ref.primary_value))
        _, source_rows = get_identity_field_values_map(self.association.source, primary_fields)
        return {
            "foreign_keys": foreign_keys,
            "pinned": pinned,
            "source": self._membership(rel.field_schema.table_name, foreign_keys, source_rows),
        }

    def _detach(self, conditions: List[FilterExpression], foreign_keys: List[str]) -> None:
        rel = self.relationship
        self.session.query(rel.field_schema.model_class).filter(*conditions).update_columns(
            {column: None for column in foreign_keys}
        )

    def detach_stale(self, values: Sequence[Any]) -> None:
        rel = self.relationship
        related = rel.field_schema
        own = self._own_side()
        conditions: List[FilterExpression] = list(own["pinned"])

        current = get_relation_values(self.association.source, rel)
        _, kept_rows = get_identity_field_values_map(current, related.primary_fields)
        if kept_rows:
            conditions.append(Not(self._membership(related.table_name, related.primary_field_columns, kept_rows)))

        if not own["source"].values:
            return
        conditions.append(own["source"])

        logger.debug(LoggingConstants.DETACH_STALE, rel.name, related.table_name)
        self._detach(conditions, own["foreign_keys"])

    def delete(self, values: Sequence[Any]) -> None:
        rel = self.relationship
        related = rel.field_schema
        own = self._own_side()
        conditions: List[FilterExpression] = list(own["pinned"]) + [own["source"]]

        _, rel_rows = get_identity_field_values_map_from_values(values, related.primary_fields)
        conditions.append(self._membership(related.table_name, related.primary_field_columns, rel_rows))
        self._detach(conditions, own["foreign_keys"])


class HasManyReconciler(HasOneReconciler):
    """Foreign key on the related table, many rows."""

    kind = RelationshipKind.HAS_MANY


class ManyToManyReconciler(Reconciler):
    """Keys in a join table; unlinking deletes join rows."""

    kind = RelationshipKind.MANY_TO_MANY

    def _join_conditions(self) -> Dict[str, Any]:
        rel = self.relationship
        join_name = rel.join_table.name
        primary_fields: List["FieldDescriptor"] = []
        join_primary_keys: List[str] = []
        rel_primary_fields: List["FieldDescriptor"] = []
        join_rel_primary_keys: List[str] = []
        conditions: List[FilterExpression] = []

        for ref in rel.references:
            if ref.is_pinned:
                conditions.append(Eq(ColumnRef(ref.foreign_key.column, join_name), ref.primary_value))
            elif ref.own_primary_key:
                primary_fields.append(ref.primary_key)
                join_primary_keys.append(ref.foreign_key.column)
            else:
                rel_primary_fields.append(ref.primary_key)
                join_rel_primary_keys.append(ref.foreign_key.column)

        # join rows are only ever selected through the source key
        _, source_rows = get_identity_field_values_map(self.association.source, primary_fields)
        if not source_rows:
            raise PrimaryKeyRequiredError(ErrorMessages.PRIMARY_KEY_REQUIRED.format(relation=rel.name))
        conditions.append(self._membership(join_name, join_primary_keys, source_rows))

        return {
            "conditions": conditions,
            "rel_primary_fields": rel_primary_fields,
            "join_rel_primary_keys": join_rel_primary_keys,
        }

    def detach_stale(self, values: Sequence[Any]) -> None:
        rel = self.relationship
        join = self._join_conditions()
        conditions: List[FilterExpression] = join["conditions"]

        current = get_relation_values(self.association.source, rel)
        _, kept_rows = get_identity_field_values_map(current, join["rel_primary_fields"])
        if kept_rows:
            conditions.append(Not(self._membership(rel.join_table.name, join["join_rel_primary_keys"], kept_rows)))

        logger.debug(LoggingConstants.DETACH_STALE, rel.name, rel.join_table.name)
        self.session.query(rel.join_table.name).filter(*conditions).delete()

    def delete(self, values: Sequence[Any]) -> None:
        rel = self.relationship
        join = self._join_conditions()
        conditions: List[FilterExpression] = join["conditions"]

        _, rel_rows = get_identity_field_values_map_from_values(values, join["rel_primary_fields"])
        conditions.append(self._membership(rel.join_table.name, join["join_rel_primary_keys"], rel_rows))
        self.session.query(rel.join_table.name).filter(*conditions).delete()


_RECONCILERS: Dict[RelationshipKind, Type[Reconciler]] = {
    cls.kind: cls
    for cls in (BelongsToReconciler, HasOneReconciler, HasManyReconciler, ManyToManyReconciler)
}


def reconciler_for(kind: RelationshipKind) -> Type[Reconciler]:
    """Reconciler class handling relationships of ``kind``."""
    return _RECONCILERS[kind]
