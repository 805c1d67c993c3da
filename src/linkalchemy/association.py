# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Association handles.

An :class:`Association` binds a source model instance (or a list of instances) to
one relationship of its model and a session. Its operations never raise for
expected failures: the first error is stored on the handle and returned by every
later call, which then does nothing.

Example::

    assoc = session.association(user, "languages")
    assoc.append(Language(code="en"))
    languages = []
    assoc.find(languages)
    if assoc.error is not None:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Type

from pydantic import BaseModel, ValidationError

from .association_reconcilers import reconciler_for
from .constants import ErrorMessages, LoggingConstants
from .exceptions import (
    LengthMismatchError,
    LinkAlchemyError,
    UnsupportedDataTypeError,
    UnsupportedRelationError,
)
from .identity import (
    copy_model_state,
    flatten_values,
    get_identity_field_values_map_from_values,
)
from .link_query_expressions import FilterExpression
from .link_schema import Relationship, schema_of

if TYPE_CHECKING:
    from .link_session import LinkSession

logger = logging.getLogger(__name__)


@dataclass
class AssignBack:
    """
    Declared write-back of a saved association member into a caller argument.

    ``index`` is the 1-based position of the member in a to-many field, or 0 for a
    to-one field.
    """
    source: Any
    dest: Any
    index: int = 0


class Association:
    """
    Association handle for one relationship of a source.

    :class: Association
    :synopsis: Find/Append/Replace/Delete/Clear/Count with first-error state
    """

    def __init__(
        self,
        session: "LinkSession",
        source: Any,
        name: str,
        unscoped: bool = False,
        model_class: Optional[Type[Any]] = None,
    ):
        self.session = session
        self.source = source
        self.name = name
        self.unscoped = unscoped
        self.relationship: Optional[Relationship] = None
        self.error: Optional[LinkAlchemyError] = None

        try:
            schema = schema_of(self._source_model(model_class))
            relationship = schema.relationships.get(name)
            if relationship is None:
                raise UnsupportedRelationError(ErrorMessages.UNSUPPORTED_RELATION.format(name=name))
            self.relationship = relationship
        except LinkAlchemyError as e:
            self.error = e

    def _source_model(self, model_class: Optional[Type[Any]]) -> Type[Any]:
        if isinstance(self.source, list):
            if not all(isinstance(s, BaseModel) for s in self.source):
                raise UnsupportedDataTypeError(ErrorMessages.INVALID_SOURCE.format(type_name="list"))
            if model_class is not None:
                return model_class
            if not self.source:
                raise UnsupportedDataTypeError(ErrorMessages.INVALID_SOURCE.format(type_name="empty list"))
            return type(self.source[0])
        if not isinstance(self.source, BaseModel):
            raise UnsupportedDataTypeError(ErrorMessages.INVALID_SOURCE.format(type_name=type(self.source).__name__))
        return type(self.source)

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Raise the stored error, if any."""
        if self.error is not None:
            raise self.error

    @property
    def sources(self) -> List[Any]:
        return list(self.source) if isinstance(self.source, list) else [self.source]

    def _run(self, operation: str, step: Callable[[], Any]) -> Any:
        if self.error is not None:
            logger.warning(LoggingConstants.ASSOCIATION_POISONED, self.name, operation, self.error)
            return None
        try:
            return step()
        except (LinkAlchemyError, ValidationError) as e:
            logger.debug(LoggingConstants.ASSOCIATION_FAILED, self.name, operation, e)
            self.error = e if isinstance(e, LinkAlchemyError) else UnsupportedDataTypeError(str(e))
            return None

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def find(self, out: Any, *conds: FilterExpression) -> Optional[LinkAlchemyError]:
        """
        Load the related rows into ``out``.

        ``out`` is a list, filled in place, or a model instance, which receives the
        first row. ``conds`` are extra predicates on the related table.
        """
        def step() -> None:
            if not isinstance(out, (list, BaseModel)):
                raise UnsupportedDataTypeError(ErrorMessages.INVALID_FIND_TARGET.format(type_name=type(out).__name__))
            results = self._related_query().filter(*conds).all()
            if isinstance(out, list):
                out[:] = results
            elif results:
                copy_model_state(results[0], out)

        self._run("find", step)
        return self.error

    def count(self) -> int:
        """Count related rows; 0 when the handle has failed."""
        result = self._run("count", lambda: self._related_query().count())
        return int(result) if result is not None else 0

    def append(self, *values: Any) -> Optional[LinkAlchemyError]:
        """Add ``values`` to the association; to-one relationships are replaced."""
        if self.error is None and self.relationship.kind.is_to_one:
            if values:
                return self.replace(*values)
            return self.error

        self._run("append", lambda: self._save_association(False, values))
        return self.error

    def replace(self, *values: Any) -> Optional[LinkAlchemyError]:
        """Make ``values`` the exact membership of the association."""
        def step() -> None:
            self._save_association(True, values)
            reconciler_for(self.relationship.kind)(self).detach_stale(values)

        self._run("replace", step)
        return self.error

    def delete(self, *values: Any) -> Optional[LinkAlchemyError]:
        """Remove ``values`` from the association, leaving other members alone."""
        def step() -> None:
            reconciler_for(self.relationship.kind)(self).delete(values)
            self._clean_up_deleted(values)

        self._run("delete", step)
        return self.error

    def clear(self) -> Optional[LinkAlchemyError]:
        """Detach every member."""
        return self.replace()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _related_query(self):
        rel = self.relationship
        query = self.session.query(rel.field_schema.model_class)
        if self.unscoped:
            query = query.unscoped()

        conditions = rel.to_query_conditions(self.source)
        if rel.join_table is None:
            return query.filter(*conditions)

        on = list(conditions)
        if not query.is_unscoped:
            on = list(rel.join_table.query_filters) + on
        return query.join(rel.join_table.name, *on)

    def _check_value_types(self, values: Any) -> None:
        element_type = self.relationship.field.element_type
        for value in flatten_values(values):
            if not isinstance(value, element_type):
                raise UnsupportedDataTypeError(ErrorMessages.UNSUPPORTED_DATA_TYPE.format(
                    type_name=type(value).__name__, relation=self.relationship.name
                ))

    def _reset_field(self, source: Any) -> None:
        rel = self.relationship
        rel.field.set(source, rel.field.zero_value())
        if rel.join_table is None:
            for ref in rel.references:
                if not ref.own_primary_key and not ref.is_pinned:
                    ref.foreign_key.set(source, None)

    def _append_to_relations(self, source: Any, value: Any, clear: bool, assign_backs: List[AssignBack]) -> None:
        rel = self.relationship
        if rel.kind.is_to_one:
            if isinstance(value, (list, tuple)):
                if not value:
                    return
                value = value[0]
            rel.field.set(source, value)
            assign_backs.append(AssignBack(source=source, dest=value))
            return

        current, zero = rel.field.value_of(source)
        members = [] if clear or zero else list(current)
        for member in value if isinstance(value, (list, tuple)) else [value]:
            members.append(member)
            assign_backs.append(AssignBack(source=source, dest=member, index=len(members)))
        rel.field.set(source, members)

    def _save_association(self, clear: bool, values: Any) -> None:
        rel = self.relationship
        assign_backs: List[AssignBack] = []

        self._check_value_types(values)

        if isinstance(self.source, list):
            if len(values) != len(self.source):
                if clear and not values:
                    for source in self.source:
                        self._reset_field(source)
                    return
                raise LengthMismatchError(ErrorMessages.LENGTH_MISMATCH.format(
                    values=len(values), sources=len(self.source)
                ))

            # one statement sequence per source element
            for source, value in zip(self.source, values):
                self._append_to_relations(source, value, clear, assign_backs)
                self.session.save_association(source, rel)
        else:
            if clear and not values:
                self._reset_field(self.source)

            for idx, value in enumerate(values):
                self._append_to_relations(self.source, value, clear and idx == 0, assign_backs)

            if values:
                self.session.save_association(self.source, rel)

        for assign_back in assign_backs:
            field_value, _ = rel.field.value_of(assign_back.source)
            saved = field_value[assign_back.index - 1] if assign_back.index > 0 else field_value
            copy_model_state(saved, assign_back.dest)

    def _clean_up_deleted(self, values: Any) -> None:
        """Drop deleted members from the in-memory association fields."""
        rel = self.relationship
        related = rel.field_schema
        deleted, _ = get_identity_field_values_map_from_values(values, related.primary_fields)

        def is_deleted(member: Any) -> bool:
            return related.primary_values(member) in deleted

        for source in self.sources:
            field_value, zero = rel.field.value_of(source)
            if zero:
                continue
            if rel.field.is_many:
                rel.field.set(source, [m for m in field_value if not is_deleted(m)])
            elif is_deleted(field_value):
                rel.field.set(source, None)
                if rel.join_table is None:
                    for ref in rel.references:
                        if ref.own_primary_key or ref.is_pinned:
                            ref.foreign_key.set(field_value, None)
                        else:
                            ref.foreign_key.set(source, None)

        if rel.join_table is None and not rel.kind.is_to_one:
            # detached members still point at this source in memory
            own_refs = [ref for ref in rel.references if ref.own_primary_key]
            source_keys = {
                tuple(ref.primary_key.value_of(source)[0] for ref in own_refs) for source in self.sources
            }
            for member in flatten_values(values):
                if tuple(ref.foreign_key.value_of(member)[0] for ref in own_refs) in source_keys:
                    for ref in own_refs:
                        ref.foreign_key.set(member, None)

    def __repr__(self) -> str:
        return f"<Association({self.name}, error={self.error!r})>"
