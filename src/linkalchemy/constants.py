# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Constants module for LinkAlchemy.

This module centralizes all constants, configuration values, and literal strings
used throughout the LinkAlchemy codebase. No magic values are allowed elsewhere.

:module: constants
:synopsis: Centralized constants and configuration for LinkAlchemy
:author: LinkAlchemy Contributors
"""

from __future__ import annotations

from enum import Enum
from typing import Final


# ============================================================================
# RELATIONSHIP KINDS
# ============================================================================

class RelationshipKind(Enum):
    """
    The four canonical relationship kinds.

    :class: RelationshipKind
    :synopsis: Enumeration of association cardinalities
    """

    BELONGS_TO = "belongs_to"      # FK lives on the owning model
    HAS_ONE = "has_one"            # FK lives on the related model, one row
    HAS_MANY = "has_many"          # FK lives on the related model, many rows
    MANY_TO_MANY = "many_to_many"  # FKs live in a join table

    @property
    def is_to_one(self) -> bool:
        """True for kinds whose association field holds a single instance."""
        return self in (RelationshipKind.BELONGS_TO, RelationshipKind.HAS_ONE)


# ============================================================================
# MODEL METADATA CONSTANTS
# ============================================================================

class ModelMetadataConstants:
    """Model metadata attribute constants."""

    # @@ STEP 1: Define model class attributes
    LINK_TABLE_NAME: Final[str] = "__link_table_name__"

    # @@ STEP 2: Define json_schema_extra keys
    LINK_FIELD_METADATA: Final[str] = "link_metadata"
    LINK_RELATIONSHIP_METADATA: Final[str] = "link_relationship"


# ============================================================================
# NAMING CONVENTION CONSTANTS
# ============================================================================

class NamingConstants:
    """Default naming conventions used when metadata leaves a name implicit."""

    # @@ STEP 1: Define table naming
    WORD_SEPARATOR: Final[str] = "_"

    # @@ STEP 2: Define key naming
    FOREIGN_KEY_TEMPLATE: Final[str] = "{prefix}_{key}"
    POLYMORPHIC_ID_TEMPLATE: Final[str] = "{prefix}_id"
    POLYMORPHIC_TYPE_TEMPLATE: Final[str] = "{prefix}_type"


# ============================================================================
# DATABASE CONSTANTS
# ============================================================================

class DatabaseConstants:
    """Database connection defaults (fixed constants; no env)."""

    DEFAULT_ECHO: Final[bool] = False


# ============================================================================
# ERROR MESSAGE CONSTANTS
# ============================================================================

class ErrorMessages:
    """Error message constants."""

    # @@ STEP 1: Define model errors
    MODEL_NOT_REGISTERED: Final[str] = "Model {model_name} is not registered - decorate it with @link_model"
    MISSING_PRIMARY_KEY: Final[str] = "Model {model_name} has no primary key field"
    INVALID_MODEL_TYPE: Final[str] = "Invalid model type: expected {expected}, got {actual}"
    TABLE_NOT_FOUND: Final[str] = "Table {table_name} is not registered"
    COLUMN_NOT_FOUND: Final[str] = "Column {column} not found in table {table_name}"
    INVALID_ORDER_BY_ARGUMENT: Final[str] = "Invalid order_by argument: {argument!r}"

    # @@ STEP 2: Define relationship metadata errors
    INVALID_RELATIONSHIP_FIELD: Final[str] = (
        "Relationship {model_name}.{field_name} must be annotated with a model, "
        "Optional[model] or List[model], got {annotation}"
    )
    FOREIGN_KEY_NOT_FOUND: Final[str] = (
        "Relationship {model_name}.{field_name}: foreign key field '{foreign_key}' not found in {target}"
    )
    REFERENCE_NOT_FOUND: Final[str] = (
        "Relationship {model_name}.{field_name}: referenced field '{reference}' not found in {target}"
    )
    KEY_COUNT_MISMATCH: Final[str] = (
        "Relationship {model_name}.{field_name}: {foreign} foreign key(s) for {primary} referenced key(s)"
    )
    JOIN_COLUMN_NOT_FOUND: Final[str] = (
        "Relationship {model_name}.{field_name}: join column '{column}' not found in join table {table}"
    )

    # @@ STEP 3: Define association errors
    UNSUPPORTED_RELATION: Final[str] = "unsupported relations: {name}"
    LENGTH_MISMATCH: Final[str] = "invalid association values, length doesn't match ({values} values for {sources} sources)"
    UNSUPPORTED_DATA_TYPE: Final[str] = "unsupported data type: {type_name} for relation {relation}"
    PRIMARY_KEY_REQUIRED: Final[str] = "primary key required for relation {relation}"
    INVALID_SOURCE: Final[str] = "Association source must be a model instance or a list of model instances, got {type_name}"
    INVALID_FIND_TARGET: Final[str] = "find() target must be a list or a model instance, got {type_name}"

    # @@ STEP 4: Define query / store errors
    STORE_FAILED: Final[str] = "Store operation failed: {error}"
    WHERE_REQUIRED: Final[str] = "Refusing to {operation} {table} without conditions"
    NO_SESSION: Final[str] = "No session attached to query"
    NO_RESULTS: Final[str] = "Query returned no results"
    MULTIPLE_RESULTS: Final[str] = "Query returned more than one result"

    # @@ STEP 5: Define session errors
    SESSION_CLOSED: Final[str] = "Session is closed"
    SESSION_SOURCE_REQUIRED: Final[str] = "Either engine or url must be provided"
    CANNOT_DELETE_WITHOUT_PK: Final[str] = "Cannot delete {model_name} without primary key"
    UNEXPECTED_TRANSACTION_ERROR: Final[str] = "Unexpected error in transaction: {type_name}: {error}"


# ============================================================================
# LOGGING CONSTANTS
# ============================================================================

class LoggingConstants:
    """Log message templates."""

    EXECUTE_STATEMENT: Final[str] = "Executing statement: %s"
    ASSOCIATION_POISONED: Final[str] = "Association %s skipped %s: handle already failed with %r"
    ASSOCIATION_FAILED: Final[str] = "Association %s failed during %s: %s"
    SAVE_ASSOCIATION: Final[str] = "Saving %s association %s on %s"
    DETACH_STALE: Final[str] = "Detaching stale %s members of %s"
    SCHEMA_PARSED: Final[str] = "Parsed schema for %s (table %s, %d relationship(s))"
