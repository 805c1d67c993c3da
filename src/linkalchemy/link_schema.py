# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Parsed model schemas and relationship descriptors.

:func:`parse_schema` turns a registered model class into a :class:`Schema`: the
column fields with their accessors, a SQLAlchemy ``Table`` in the shared registry
metadata, and one immutable :class:`Relationship` per association field. A
relationship resolves its declaration into an ordered list of :class:`Reference`
key pairs which tell, for every join column, which side owns the primary key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import datetime
import decimal
import enum
import logging
import types
import uuid
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    Union,
    get_args,
    get_origin,
)

from pydantic import BaseModel
from pydantic.errors import PydanticUndefinedAnnotation
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    LargeBinary,
    Numeric,
    String,
    Table,
    Time,
    Uuid,
)
from sqlalchemy import Enum as SAEnum

from .constants import ErrorMessages, LoggingConstants, ModelMetadataConstants, NamingConstants, RelationshipKind
from .exceptions import SchemaError
from .identity import get_identity_field_values_map, to_query_values
from .link_orm import (
    LinkFieldMetadata,
    RelationshipMetadata,
    as_key_list,
    get_registry,
    singularize,
    snake_case,
)
from .link_query_expressions import ColumnRef, Eq, FilterExpression, In

logger = logging.getLogger(__name__)

_PYTHON_TO_SA: Dict[type, Any] = {
    bool: Boolean,
    int: Integer,
    float: Float,
    str: String,
    bytes: LargeBinary,
    decimal.Decimal: Numeric,
    datetime.datetime: DateTime,
    datetime.date: Date,
    datetime.time: Time,
    uuid.UUID: Uuid,
}


# -----------------------------------------------------------------------------
# Annotation helpers
# -----------------------------------------------------------------------------

def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    """Strip ``Optional[...]`` / ``X | None``; return (inner annotation, was_optional)."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return annotation, False


def _sa_type_for(annotation: Any) -> Any:
    inner, _ = _unwrap_optional(annotation)
    origin = get_origin(inner)
    if origin in (list, dict, tuple, set):
        return JSON
    if isinstance(inner, type):
        if issubclass(inner, enum.Enum):
            return SAEnum(inner)
        for python_type, sa_type in _PYTHON_TO_SA.items():
            if issubclass(inner, python_type):
                return sa_type
    return None


def _is_link_model(candidate: Any) -> bool:
    return (
        isinstance(candidate, type)
        and issubclass(candidate, BaseModel)
        and ModelMetadataConstants.LINK_TABLE_NAME in candidate.__dict__
    )


# -----------------------------------------------------------------------------
# Field accessor
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class FieldDescriptor:
    """
    Accessor for one named field of a model (or one column of a join table).

    :class: FieldDescriptor
    :synopsis: Typed get/set of a field by its logical identity
    """
    name: str
    column: Optional[str] = None
    python_type: Any = None
    primary_key: bool = False
    auto_increment: bool = False
    is_relationship: bool = False
    is_many: bool = False
    element_type: Optional[Type[Any]] = None

    @staticmethod
    def is_zero_value(value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, (list, tuple, set, dict)):
            return len(value) == 0
        return False

    def value_of(self, instance: Any) -> Tuple[Any, bool]:
        """Return ``(value, is_zero)`` of this field on ``instance``."""
        if isinstance(instance, Mapping):
            value = instance.get(self.column or self.name)
        else:
            value = getattr(instance, self.name, None)
        return value, self.is_zero_value(value)

    def set(self, instance: Any, value: Any) -> None:
        """Assign ``value``; pydantic validates the assignment."""
        if isinstance(instance, dict):
            instance[self.column or self.name] = value
        else:
            setattr(instance, self.name, value)

    def zero_value(self) -> Any:
        return [] if self.is_many else None


# -----------------------------------------------------------------------------
# Relationship descriptors
# -----------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Reference:
    """
    One foreign-key binding of a relationship.

    ``primary_key`` is the field feeding the value (None when the reference is
    pinned to ``primary_value``), ``foreign_key`` the field or join column that
    receives it. ``own_primary_key`` tells whether ``primary_key`` belongs to the
    owning model.
    """
    foreign_key: FieldDescriptor
    primary_key: Optional[FieldDescriptor] = None
    own_primary_key: bool = False
    primary_value: Optional[str] = None

    @property
    def is_pinned(self) -> bool:
        return self.primary_value is not None


@dataclass(eq=False)
class JoinTable:
    """Join table of a many-to-many relationship."""
    name: str
    table: Table
    fields: Dict[str, FieldDescriptor]
    query_filters: List[FilterExpression] = field(default_factory=list)
    model_class: Optional[Type[Any]] = None


@dataclass(eq=False)
class Relationship:
    """
    Immutable description of one association, shared by every handle that uses it.

    :class: Relationship
    :synopsis: Kind, association field, both schemas and the key references
    """
    name: str
    kind: RelationshipKind
    field: FieldDescriptor
    schema: "Schema"
    field_schema: "Schema"
    references: List[Reference]
    join_table: Optional[JoinTable] = None

    def to_query_conditions(self, source: Any) -> List[FilterExpression]:
        """
        Predicates selecting the rows related to ``source``.

        ``source`` is a model instance or a list of them. Without a join table the
        predicates apply to the related table. With a join table they apply to the
        join rows and also tie each join row to the related table, so they are meant
        to be used as the ON clause of a join.
        """
        conditions: List[FilterExpression] = []
        foreign_fields: List[FieldDescriptor] = []
        rel_foreign_keys: List[str] = []

        if self.join_table is not None:
            table_name = self.join_table.name
            for ref in self.references:
                join_column = ColumnRef(ref.foreign_key.column, table_name)
                if ref.own_primary_key:
                    foreign_fields.append(ref.primary_key)
                    rel_foreign_keys.append(ref.foreign_key.column)
                elif ref.is_pinned:
                    conditions.append(Eq(join_column, ref.primary_value))
                else:
                    conditions.append(Eq(
                        join_column,
                        ColumnRef(ref.primary_key.column, self.field_schema.table_name),
                    ))
        else:
            table_name = self.field_schema.table_name
            for ref in self.references:
                if ref.own_primary_key:
                    rel_foreign_keys.append(ref.foreign_key.column)
                    foreign_fields.append(ref.primary_key)
                elif ref.is_pinned:
                    conditions.append(Eq(ColumnRef(ref.foreign_key.column, table_name), ref.primary_value))
                else:
                    rel_foreign_keys.append(ref.primary_key.column)
                    foreign_fields.append(ref.foreign_key)

        _, foreign_values = get_identity_field_values_map(source, foreign_fields)
        column, values = to_query_values(table_name, rel_foreign_keys, foreign_values)
        conditions.append(In(column, values))
        return conditions

    def __repr__(self) -> str:
        return f"Relationship({self.schema.model_class.__name__}.{self.name}, {self.kind.value})"


# -----------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class Schema:
    """Parsed metadata of one model class."""
    model_class: Type[Any]
    table_name: str
    fields: Dict[str, FieldDescriptor] = field(default_factory=dict)
    primary_fields: List[FieldDescriptor] = field(default_factory=list)
    relationships: Dict[str, Relationship] = field(default_factory=dict)
    table: Optional[Table] = None

    @property
    def column_fields(self) -> List[FieldDescriptor]:
        return [f for f in self.fields.values() if not f.is_relationship]

    @property
    def primary_field_columns(self) -> List[str]:
        return [f.column for f in self.primary_fields]

    def primary_values(self, instance: Any) -> Tuple[Any, ...]:
        return tuple(fd.value_of(instance)[0] for fd in self.primary_fields)

    def has_primary_key(self, instance: Any) -> bool:
        """True when every primary key field of ``instance`` is set."""
        return all(not fd.value_of(instance)[1] for fd in self.primary_fields)

    def column_values(self, instance: Any, fields: Optional[List[FieldDescriptor]] = None) -> Dict[str, Any]:
        """
        Column -> value mapping for ``instance``.

        Unset auto-increment fields are left out so the store can generate them.
        """
        values: Dict[str, Any] = {}
        for fd in fields if fields is not None else self.column_fields:
            value, zero = fd.value_of(instance)
            if fd.auto_increment and zero:
                continue
            values[fd.column] = value
        return values

    def from_row(self, row: Mapping[str, Any]) -> Any:
        """Build a model instance from a result row keyed by column name."""
        data = {fd.name: row[fd.column] for fd in self.column_fields if fd.column in row}
        return self.model_class.model_construct(**data)


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------

def schema_of(instance_or_class: Any) -> Schema:
    """Schema of a model class or instance."""
    cls = instance_or_class if isinstance(instance_or_class, type) else type(instance_or_class)
    return parse_schema(cls)


def parse_schema(model_class: Type[Any]) -> Schema:
    """
    Parse (or fetch from cache) the schema of a registered model class.

    :raises SchemaError: if the model is not registered or its metadata is malformed
    """
    registry = get_registry()
    cached = registry.get_cached_schema(model_class)
    if cached is not None:
        return cached

    if not _is_link_model(model_class):
        raise SchemaError(ErrorMessages.MODEL_NOT_REGISTERED.format(
            model_name=getattr(model_class, "__name__", repr(model_class))
        ))

    if not model_class.__pydantic_complete__:
        try:
            model_class.model_rebuild()
        except PydanticUndefinedAnnotation as e:
            raise SchemaError(str(e)) from e

    schema = Schema(
        model_class=model_class,
        table_name=getattr(model_class, ModelMetadataConstants.LINK_TABLE_NAME),
    )

    # @@ STEP 1: Column fields and table
    relationship_fields: Dict[str, RelationshipMetadata] = {}
    for field_name, field_info in model_class.model_fields.items():
        rel_meta = registry.get_relationship_metadata(field_info)
        if rel_meta is not None:
            relationship_fields[field_name] = rel_meta
            continue
        meta = registry.get_field_metadata(field_info) or LinkFieldMetadata()
        fd = FieldDescriptor(
            name=field_name,
            column=meta.column or field_name,
            python_type=field_info.annotation,
            primary_key=meta.primary_key,
            auto_increment=meta.auto_increment,
        )
        schema.fields[field_name] = fd
        if fd.primary_key:
            schema.primary_fields.append(fd)

    if not schema.primary_fields:
        raise SchemaError(ErrorMessages.MISSING_PRIMARY_KEY.format(model_name=model_class.__name__))

    schema.table = _build_table(schema)

    # @@ STEP 2: Cache before resolving relationships
    # || S.2.1: Related models may point back at this model (or at themselves)
    registry.cache_schema(model_class, schema)

    # @@ STEP 3: Relationships
    try:
        for field_name, rel_meta in relationship_fields.items():
            field_info = model_class.model_fields[field_name]
            schema.relationships[field_name] = _parse_relationship(schema, field_name, field_info.annotation, rel_meta)
    except SchemaError:
        registry.discard_schema(model_class)
        raise

    logger.debug(LoggingConstants.SCHEMA_PARSED, model_class.__name__, schema.table_name, len(schema.relationships))
    return schema


def _build_table(schema: Schema) -> Table:
    metadata = get_registry().metadata
    existing = metadata.tables.get(schema.table_name)
    if existing is not None:
        metadata.remove(existing)

    columns: List[Column] = []
    for fd in schema.column_fields:
        field_info = schema.model_class.model_fields[fd.name]
        meta = get_registry().get_field_metadata(field_info) or LinkFieldMetadata()
        sa_type = meta.sa_type or _sa_type_for(field_info.annotation)
        if sa_type is None:
            raise SchemaError(ErrorMessages.INVALID_MODEL_TYPE.format(
                expected="a column-mappable type", actual=f"{schema.model_class.__name__}.{fd.name}: {field_info.annotation}"
            ))
        _, optional = _unwrap_optional(field_info.annotation)
        nullable = meta.nullable if meta.nullable is not None else (optional and not fd.primary_key)
        kwargs: Dict[str, Any] = {
            "primary_key": fd.primary_key,
            "nullable": nullable,
            "index": meta.index or None,
            "unique": meta.unique or None,
        }
        if fd.primary_key:
            # composite keys are never generated by the store
            kwargs["autoincrement"] = fd.auto_increment
        if not field_info.is_required() and field_info.default is not None and not fd.auto_increment:
            if isinstance(field_info.default, (bool, int, float, str, decimal.Decimal, enum.Enum)):
                kwargs["default"] = field_info.default
        columns.append(Column(fd.column, sa_type, **kwargs))
    return Table(schema.table_name, metadata, *columns)


def _related_model(owner: Schema, field_name: str, annotation: Any, kind: RelationshipKind) -> Type[Any]:
    inner, _ = _unwrap_optional(annotation)
    origin = get_origin(inner)
    is_many = origin in (list, List)
    if is_many:
        args = get_args(inner)
        inner = args[0] if args else None
    if is_many == kind.is_to_one or not _is_link_model(inner):
        raise SchemaError(ErrorMessages.INVALID_RELATIONSHIP_FIELD.format(
            model_name=owner.model_class.__name__, field_name=field_name, annotation=annotation
        ))
    return inner


def _lookup_fields(owner: Schema, field_name: str, target: Schema, names: List[str], message: str, key: str) -> List[FieldDescriptor]:
    found: List[FieldDescriptor] = []
    for name in names:
        fd = target.fields.get(name)
        if fd is None or fd.is_relationship:
            raise SchemaError(message.format(**{
                "model_name": owner.model_class.__name__,
                "field_name": field_name,
                key: name,
                "target": target.model_class.__name__,
            }))
        found.append(fd)
    return found


def _check_pairing(owner: Schema, field_name: str, foreign: List[Any], primary: List[Any]) -> None:
    if len(foreign) != len(primary):
        raise SchemaError(ErrorMessages.KEY_COUNT_MISMATCH.format(
            model_name=owner.model_class.__name__, field_name=field_name,
            foreign=len(foreign), primary=len(primary),
        ))


def _parse_relationship(owner: Schema, field_name: str, annotation: Any, meta: RelationshipMetadata) -> Relationship:
    related_class = _related_model(owner, field_name, annotation, meta.kind)
    related = parse_schema(related_class)

    association_field = FieldDescriptor(
        name=field_name,
        python_type=annotation,
        is_relationship=True,
        is_many=not meta.kind.is_to_one,
        element_type=related_class,
    )
    owner.fields[field_name] = association_field

    references: List[Reference] = []
    join_table: Optional[JoinTable] = None

    if meta.kind == RelationshipKind.BELONGS_TO:
        # @@ STEP 1: FK on the owner, referencing the related key
        ref_names = as_key_list(meta.references) or [f.name for f in related.primary_fields]
        primaries = _lookup_fields(owner, field_name, related, ref_names, ErrorMessages.REFERENCE_NOT_FOUND, "reference")
        fk_names = as_key_list(meta.foreign_key) or [
            NamingConstants.FOREIGN_KEY_TEMPLATE.format(prefix=field_name, key=p.name) for p in primaries
        ]
        _check_pairing(owner, field_name, fk_names, primaries)
        foreigns = _lookup_fields(owner, field_name, owner, fk_names, ErrorMessages.FOREIGN_KEY_NOT_FOUND, "foreign_key")
        references = [Reference(foreign_key=fk, primary_key=pk, own_primary_key=False) for fk, pk in zip(foreigns, primaries)]

    elif meta.kind in (RelationshipKind.HAS_ONE, RelationshipKind.HAS_MANY):
        # @@ STEP 2: FK on the related model, referencing the owner key
        ref_names = as_key_list(meta.references) or [f.name for f in owner.primary_fields]
        primaries = _lookup_fields(owner, field_name, owner, ref_names, ErrorMessages.REFERENCE_NOT_FOUND, "reference")
        if meta.polymorphic:
            fk_names = as_key_list(meta.foreign_key) or [NamingConstants.POLYMORPHIC_ID_TEMPLATE.format(prefix=meta.polymorphic)]
        else:
            owner_prefix = snake_case(owner.model_class.__name__)
            fk_names = as_key_list(meta.foreign_key) or [
                NamingConstants.FOREIGN_KEY_TEMPLATE.format(prefix=owner_prefix, key=p.name) for p in primaries
            ]
        _check_pairing(owner, field_name, fk_names, primaries)
        foreigns = _lookup_fields(owner, field_name, related, fk_names, ErrorMessages.FOREIGN_KEY_NOT_FOUND, "foreign_key")
        references = [Reference(foreign_key=fk, primary_key=pk, own_primary_key=True) for fk, pk in zip(foreigns, primaries)]

        if meta.polymorphic:
            type_name = NamingConstants.POLYMORPHIC_TYPE_TEMPLATE.format(prefix=meta.polymorphic)
            type_field = _lookup_fields(owner, field_name, related, [type_name], ErrorMessages.FOREIGN_KEY_NOT_FOUND, "foreign_key")[0]
            references.append(Reference(
                foreign_key=type_field,
                primary_value=meta.polymorphic_value or owner.table_name,
            ))

    else:
        # @@ STEP 3: Both keys in a join table
        own_names = as_key_list(meta.foreign_key) or [f.name for f in owner.primary_fields]
        own_primaries = _lookup_fields(owner, field_name, owner, own_names, ErrorMessages.REFERENCE_NOT_FOUND, "reference")
        rel_names = as_key_list(meta.references) or [f.name for f in related.primary_fields]
        rel_primaries = _lookup_fields(owner, field_name, related, rel_names, ErrorMessages.REFERENCE_NOT_FOUND, "reference")

        owner_prefix = snake_case(owner.model_class.__name__)
        related_prefix = snake_case(related_class.__name__)
        if related_prefix == owner_prefix:
            related_prefix = singularize(field_name)
        join_own = as_key_list(meta.join_foreign_key) or [
            NamingConstants.FOREIGN_KEY_TEMPLATE.format(prefix=owner_prefix, key=p.column) for p in own_primaries
        ]
        join_rel = as_key_list(meta.join_references) or [
            NamingConstants.FOREIGN_KEY_TEMPLATE.format(prefix=related_prefix, key=p.column) for p in rel_primaries
        ]
        _check_pairing(owner, field_name, join_own, own_primaries)
        _check_pairing(owner, field_name, join_rel, rel_primaries)

        join_table = _build_join_table(owner, field_name, meta, list(zip(join_own, own_primaries)) + list(zip(join_rel, rel_primaries)))
        references = [
            Reference(foreign_key=join_table.fields[col], primary_key=pk, own_primary_key=True)
            for col, pk in zip(join_own, own_primaries)
        ] + [
            Reference(foreign_key=join_table.fields[col], primary_key=pk, own_primary_key=False)
            for col, pk in zip(join_rel, rel_primaries)
        ]

    return Relationship(
        name=field_name,
        kind=meta.kind,
        field=association_field,
        schema=owner,
        field_schema=related,
        references=references,
        join_table=join_table,
    )


def _build_join_table(
    owner: Schema,
    field_name: str,
    meta: RelationshipMetadata,
    columns: List[Tuple[str, FieldDescriptor]],
) -> JoinTable:
    registry = get_registry()
    model_class: Optional[Type[Any]] = None

    if meta.join_model is not None:
        model_class = meta.join_model
        if isinstance(model_class, str):
            model_class = registry.get_model_by_name(model_class)
        if model_class is None:
            raise SchemaError(ErrorMessages.TABLE_NOT_FOUND.format(table_name=meta.join_model))
        table = parse_schema(model_class).table
    else:
        table = registry.metadata.tables.get(meta.join_table)
        if table is None:
            # the inverse side of the relationship may already have built it
            table = Table(
                meta.join_table,
                registry.metadata,
                *[
                    Column(col, _sa_type_for(pk.python_type) or Integer, primary_key=True, autoincrement=False)
                    for col, pk in columns
                ],
            )

    fields: Dict[str, FieldDescriptor] = {}
    for col, pk in columns:
        if col not in table.c:
            raise SchemaError(ErrorMessages.JOIN_COLUMN_NOT_FOUND.format(
                model_name=owner.model_class.__name__, field_name=field_name, column=col, table=table.name
            ))
        fields[col] = FieldDescriptor(name=col, column=col, python_type=pk.python_type)

    query_filters: List[FilterExpression] = []
    for col, value in meta.join_filters.items():
        if col not in table.c:
            raise SchemaError(ErrorMessages.JOIN_COLUMN_NOT_FOUND.format(
                model_name=owner.model_class.__name__, field_name=field_name, column=col, table=table.name
            ))
        query_filters.append(Eq(ColumnRef(col, table.name), value))

    return JoinTable(
        name=table.name,
        table=table,
        fields=fields,
        query_filters=query_filters,
        model_class=model_class,
    )
