# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
LinkAlchemy model layer: decorators, field metadata and relationship declarations.

Models are pydantic models decorated with :func:`link_model`. Column fields carry
:class:`LinkFieldMetadata` and association fields carry :class:`RelationshipMetadata`,
both stored in the pydantic ``json_schema_extra`` of the field. Metadata is only
interpreted lazily, when :mod:`linkalchemy.link_schema` parses a model, so models
may reference each other before they are all defined.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Type,
    TypeVar,
    Union,
)

import inflect
from pydantic import BaseModel, ConfigDict, Field
from pydantic.fields import FieldInfo
from sqlalchemy import MetaData

from .constants import (
    ErrorMessages,
    ModelMetadataConstants,
    NamingConstants,
    RelationshipKind,
)
from .exceptions import SchemaError

if TYPE_CHECKING:
    from .link_schema import Schema

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Type variables
# -----------------------------------------------------------------------------

T = TypeVar("T")
KeyNames = Union[str, List[str], None]

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_inflector = inflect.engine()


def snake_case(name: str) -> str:
    """Convert ``CamelCase`` to ``snake_case``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def pluralize(name: str) -> str:
    """Pluralize the last word of a snake_case name (``user_company`` -> ``user_companies``)."""
    head, sep, last = name.rpartition(NamingConstants.WORD_SEPARATOR)
    return f"{head}{sep}{_inflector.plural_noun(last)}"


def singularize(name: str) -> str:
    """Singularize the last word of a snake_case name; words that are not plural are kept."""
    head, sep, last = name.rpartition(NamingConstants.WORD_SEPARATOR)
    return f"{head}{sep}{_inflector.singular_noun(last) or last}"


def default_table_name(cls: Type[Any]) -> str:
    """Default table name for a model class: the pluralized snake_case class name."""
    return pluralize(snake_case(cls.__name__))


def as_key_list(names: KeyNames) -> List[str]:
    """Normalize a single key name or list of key names to a list."""
    if names is None:
        return []
    if isinstance(names, str):
        return [names]
    return list(names)


# -----------------------------------------------------------------------------
# Field metadata
# -----------------------------------------------------------------------------

@dataclass
class LinkFieldMetadata:
    """
    Metadata for column fields.

    :class: LinkFieldMetadata
    :synopsis: Column mapping and key flags of a model field
    """
    primary_key: bool = False
    auto_increment: bool = False
    column: Optional[str] = None
    sa_type: Optional[Any] = None
    nullable: Optional[bool] = None
    index: bool = False
    unique: bool = False


@dataclass
class RelationshipMetadata:
    """
    Declared (unresolved) metadata of an association field.

    Key names are field names on the model that holds them; they are resolved
    into :class:`linkalchemy.link_schema.Reference` objects when the owning model
    is parsed.

    :class: RelationshipMetadata
    :synopsis: Relationship declaration carried by an association field
    """
    kind: RelationshipKind
    foreign_key: KeyNames = None
    references: KeyNames = None
    polymorphic: Optional[str] = None
    polymorphic_value: Optional[str] = None
    join_table: Optional[str] = None
    join_foreign_key: KeyNames = None
    join_references: KeyNames = None
    join_model: Optional[Union[Type[Any], str]] = None
    join_filters: Dict[str, Any] = field(default_factory=dict)


def link_field(
    default: Any = ...,
    *,
    primary_key: bool = False,
    auto_increment: bool = False,
    column: Optional[str] = None,
    sa_type: Optional[Any] = None,
    nullable: Optional[bool] = None,
    index: bool = False,
    unique: bool = False,
    default_factory: Optional[Callable[[], Any]] = None,
    alias: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    json_schema_extra: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Create a Pydantic Field with attached column metadata.

    Args:
        default: Default value for the field
        primary_key: Whether the field is (part of) the primary key
        auto_increment: Whether the store generates the value on insert
        column: Column name, defaults to the field name
        sa_type: Explicit SQLAlchemy type, otherwise inferred from the annotation
        nullable: Explicit nullability, otherwise inferred from the annotation
        default_factory: Python-side default factory function
    """
    link_metadata = LinkFieldMetadata(
        primary_key=primary_key,
        auto_increment=auto_increment,
        column=column,
        sa_type=sa_type,
        nullable=nullable,
        index=index,
        unique=unique,
    )

    if type(json_schema_extra) is not dict:
        json_schema_extra = {}
    json_schema_extra[ModelMetadataConstants.LINK_FIELD_METADATA] = link_metadata

    field_kwargs = {
        "json_schema_extra": json_schema_extra,
        "alias": alias,
        "title": title,
        "description": description,
    }

    if auto_increment:
        # Generated by the store on insert; None marks "not yet generated"
        return Field(default=None, **field_kwargs)
    if default_factory is not None:
        return Field(default_factory=default_factory, **field_kwargs)
    return Field(default=default, **field_kwargs)


# -----------------------------------------------------------------------------
# Relationship declarations
# -----------------------------------------------------------------------------

def _relationship_field(metadata: RelationshipMetadata) -> Any:
    extra = {ModelMetadataConstants.LINK_RELATIONSHIP_METADATA: metadata}
    # Association fields are excluded from dumps and reprs: object graphs may be cyclic
    if metadata.kind.is_to_one:
        return Field(default=None, exclude=True, repr=False, json_schema_extra=extra)
    return Field(default_factory=list, exclude=True, repr=False, json_schema_extra=extra)


def belongs_to(foreign_key: KeyNames = None, references: KeyNames = None) -> Any:
    """
    Declare a belongs-to association.

    :param foreign_key: Field(s) on this model holding the related key.
                        Defaults to ``<field>_<related pk>``.
    :param references: Field(s) on the related model being referenced.
                       Defaults to the related primary key.
    """
    return _relationship_field(RelationshipMetadata(
        kind=RelationshipKind.BELONGS_TO,
        foreign_key=foreign_key,
        references=references,
    ))


def has_one(
    foreign_key: KeyNames = None,
    references: KeyNames = None,
    polymorphic: Optional[str] = None,
    polymorphic_value: Optional[str] = None,
) -> Any:
    """
    Declare a has-one association.

    :param foreign_key: Field(s) on the related model pointing back at this model.
                        Defaults to ``<this model>_<pk>``.
    :param references: Field(s) on this model being referenced (default: primary key).
    :param polymorphic: Prefix of the ``<prefix>_id`` / ``<prefix>_type`` pair on the
                        related model. The type column is pinned to ``polymorphic_value``
                        (default: this model's table name).
    """
    return _relationship_field(RelationshipMetadata(
        kind=RelationshipKind.HAS_ONE,
        foreign_key=foreign_key,
        references=references,
        polymorphic=polymorphic,
        polymorphic_value=polymorphic_value,
    ))


def has_many(
    foreign_key: KeyNames = None,
    references: KeyNames = None,
    polymorphic: Optional[str] = None,
    polymorphic_value: Optional[str] = None,
) -> Any:
    """Declare a has-many association. Arguments as for :func:`has_one`."""
    return _relationship_field(RelationshipMetadata(
        kind=RelationshipKind.HAS_MANY,
        foreign_key=foreign_key,
        references=references,
        polymorphic=polymorphic,
        polymorphic_value=polymorphic_value,
    ))


def many_to_many(
    join_table: str,
    join_foreign_key: KeyNames = None,
    join_references: KeyNames = None,
    join_model: Optional[Union[Type[Any], str]] = None,
    join_filters: Optional[Dict[str, Any]] = None,
    foreign_key: KeyNames = None,
    references: KeyNames = None,
) -> Any:
    """
    Declare a many-to-many association through a join table.

    :param join_table: Name of the join table.
    :param join_foreign_key: Join column(s) holding this model's key.
                             Defaults to ``<this model>_<pk>``.
    :param join_references: Join column(s) holding the related model's key.
                            Defaults to ``<related model>_<pk>``, or ``<field>_<pk>``
                            when the relationship references its own model.
    :param join_model: Registered model (or its table name) to use as the join table
                       instead of a generated two-column table.
    :param join_filters: ``{column: value}`` default filters on join rows, applied
                         when finding or counting unless the handle is unscoped.
    :param foreign_key: Field(s) on this model feeding the join table (default: pk).
    :param references: Field(s) on the related model feeding the join table (default: pk).
    """
    return _relationship_field(RelationshipMetadata(
        kind=RelationshipKind.MANY_TO_MANY,
        foreign_key=foreign_key,
        references=references,
        join_table=join_table,
        join_foreign_key=join_foreign_key,
        join_references=join_references,
        join_model=join_model,
        join_filters=dict(join_filters or {}),
    ))


# -----------------------------------------------------------------------------
# Global registry
# -----------------------------------------------------------------------------

class LinkRegistry:
    """
    Global registry for models, their parsed schemas and the shared table metadata.

    Schemas are parsed lazily on first use and cached until the model is
    redefined or the registry is cleared.
    """

    _instance: Optional["LinkRegistry"] = None

    def __new__(cls) -> "LinkRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self.__dict__.get("_initialized", False):
            return
        self._initialized = True

        # @@ STEP 1: Core model storage
        self.models: Dict[str, Type[Any]] = {}
        self.metadata: MetaData = MetaData()

        # @@ STEP 2: Parsed schema cache, keyed by model class
        self._schemas: Dict[Type[Any], "Schema"] = {}

    def register_model(self, table_name: str, cls: Type[Any]) -> None:
        """
        Register a model class under its table name.

        Re-registering a table name replaces the previous model and drops every
        cached schema and table, since they may reference the old class.
        """
        if table_name in self.models:
            logger.debug("Redefining model for table %s", table_name)
            self._schemas.clear()
            self.metadata.clear()
        self.models[table_name] = cls

    def get_model_by_name(self, name: str) -> Optional[Type[Any]]:
        """Look a model up by class name or table name."""
        model = self.models.get(name)
        if model is not None:
            return model
        for cls in self.models.values():
            if cls.__name__ == name:
                return cls
        return None

    def get_cached_schema(self, cls: Type[Any]) -> Optional["Schema"]:
        return self._schemas.get(cls)

    def cache_schema(self, cls: Type[Any], schema: "Schema") -> None:
        self._schemas[cls] = schema

    def discard_schema(self, cls: Type[Any]) -> None:
        self._schemas.pop(cls, None)

    @staticmethod
    def get_field_metadata(field_info: FieldInfo) -> Optional[LinkFieldMetadata]:
        """
        Get column metadata from field info.

        :param field_info: Pydantic field info
        :type field_info: FieldInfo
        :returns: Column metadata or None
        :rtype: Optional[LinkFieldMetadata]
        """
        extra = field_info.json_schema_extra
        if extra and isinstance(extra, dict):
            meta = extra.get(ModelMetadataConstants.LINK_FIELD_METADATA)
            if isinstance(meta, LinkFieldMetadata):
                return meta
            if isinstance(meta, dict):
                return LinkFieldMetadata(**meta)
        return None

    @staticmethod
    def get_relationship_metadata(field_info: FieldInfo) -> Optional[RelationshipMetadata]:
        extra = field_info.json_schema_extra
        if extra and isinstance(extra, dict):
            meta = extra.get(ModelMetadataConstants.LINK_RELATIONSHIP_METADATA)
            if isinstance(meta, RelationshipMetadata):
                return meta
        return None

    def clear(self) -> None:
        """Clear all registrations and cached state."""
        self._schemas.clear()
        self.metadata.clear()
        self.models.clear()


# Singleton
_link_registry = LinkRegistry()


def get_registry() -> LinkRegistry:
    return _link_registry


# -----------------------------------------------------------------------------
# Decorators
# -----------------------------------------------------------------------------

def link_model(table: Optional[str] = None) -> Callable[[Type[T]], Type[T]]:
    """Decorator to register a class as a LinkAlchemy model backed by ``table``."""

    def decorator(cls: Type[T]) -> Type[T]:
        table_name = table if table is not None else default_table_name(cls)

        setattr(cls, ModelMetadataConstants.LINK_TABLE_NAME, table_name)

        _link_registry.register_model(table_name, cls)
        return cls

    return decorator


# -----------------------------------------------------------------------------
# Base model
# -----------------------------------------------------------------------------

class LinkBaseModel(BaseModel):
    """Base model for all LinkAlchemy entities."""

    model_config = ConfigDict(
        arbitrary_types_allowed=True, validate_assignment=True, use_enum_values=False
    )

    @classmethod
    def get_table_name(cls) -> str:
        table_name = cls.__dict__.get(ModelMetadataConstants.LINK_TABLE_NAME)
        if table_name is None:
            raise SchemaError(ErrorMessages.MODEL_NOT_REGISTERED.format(model_name=cls.__name__))
        return table_name


# -----------------------------------------------------------------------------
# Module-level registry helpers
# -----------------------------------------------------------------------------

def get_registered_models() -> Dict[str, Type[Any]]:
    return dict(_link_registry.models)


def get_metadata() -> MetaData:
    """Shared SQLAlchemy metadata holding every parsed model and join table."""
    return _link_registry.metadata


def finalize_registry() -> MetaData:
    """Parse every registered model so that all tables exist in the metadata."""
    from .link_schema import parse_schema

    for cls in list(_link_registry.models.values()):
        parse_schema(cls)
    return _link_registry.metadata


def clear_registry() -> None:
    """Clear all registered models and reset registry state."""
    _link_registry.clear()
