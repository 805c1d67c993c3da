# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Identity helpers: collect key values from sources and turn them into IN operands.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Sequence, Tuple, Union

from .link_query_expressions import ColumnRef

if TYPE_CHECKING:
    from .link_schema import FieldDescriptor, Relationship

logger = logging.getLogger(__name__)

IdentityKey = Tuple[Any, ...]


def iter_sources(source: Any) -> List[Any]:
    """A single instance or a list/tuple of instances, as a list."""
    if isinstance(source, (list, tuple)):
        return list(source)
    return [source]


def flatten_values(values: Iterable[Any]) -> List[Any]:
    """Flatten a variadic values argument one level (models or lists of models)."""
    flat: List[Any] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            flat.extend(value)
        else:
            flat.append(value)
    return flat


def _collect(objects: Iterable[Any], fields: Sequence["FieldDescriptor"]) -> Tuple[Dict[IdentityKey, List[Any]], List[List[Any]]]:
    data_results: Dict[IdentityKey, List[Any]] = {}
    results: List[List[Any]] = []
    seen_objects = set()

    for obj in objects:
        if obj is None or id(obj) in seen_objects:
            continue
        seen_objects.add(id(obj))

        row: List[Any] = []
        not_zero = False
        for fd in fields:
            value, zero = fd.value_of(obj)
            row.append(value)
            not_zero = not_zero or not zero

        if not not_zero:
            continue
        key = tuple(row)
        if key in data_results:
            data_results[key].append(obj)
        else:
            data_results[key] = [obj]
            results.append(row)

    return data_results, results


def get_identity_field_values_map(
    source: Any, fields: Sequence["FieldDescriptor"]
) -> Tuple[Dict[IdentityKey, List[Any]], List[List[Any]]]:
    """
    Identity values of ``fields`` over one source or a list of sources.

    Returns a mapping of identity tuple to the objects carrying it, and the list of
    distinct value rows in first-seen order. Rows where every field is zero are
    skipped.
    """
    return _collect(iter_sources(source), fields)


def get_identity_field_values_map_from_values(
    values: Iterable[Any], fields: Sequence["FieldDescriptor"]
) -> Tuple[Dict[IdentityKey, List[Any]], List[List[Any]]]:
    """Like :func:`get_identity_field_values_map` over a flattened variadic argument."""
    return _collect(flatten_values(values), fields)


def to_query_values(
    table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
) -> Tuple[Union[ColumnRef, Tuple[ColumnRef, ...]], List[Any]]:
    """
    IN operands for ``columns`` of ``table``.

    One column yields a single ``ColumnRef`` and a flat value list; several yield a
    tuple of ``ColumnRef`` and a list of value tuples.
    """
    if len(columns) == 1:
        return ColumnRef(columns[0], table), [row[0] for row in rows]
    return tuple(ColumnRef(c, table) for c in columns), [tuple(row) for row in rows]


def get_relation_values(source: Any, relationship: "Relationship") -> List[Any]:
    """Current members of the association field, across one or many sources."""
    members: List[Any] = []
    seen = set()
    for obj in iter_sources(source):
        value, zero = relationship.field.value_of(obj)
        if zero:
            continue
        for member in value if isinstance(value, list) else [value]:
            if id(member) not in seen:
                seen.add(id(member))
                members.append(member)
    return members


def copy_model_state(src: Any, dest: Any) -> None:
    """Copy every field of ``src`` onto ``dest`` (no-op when they are the same object)."""
    if src is dest:
        return
    for field_name in type(src).model_fields:
        setattr(dest, field_name, getattr(src, field_name))
