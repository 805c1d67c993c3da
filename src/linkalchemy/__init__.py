# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
LinkAlchemy: relationship synchronization for pydantic models over SQLAlchemy.
"""

from __future__ import annotations

from .association import AssignBack, Association
from .association_reconcilers import (
    BelongsToReconciler,
    HasManyReconciler,
    HasOneReconciler,
    ManyToManyReconciler,
    reconciler_for,
)
from .constants import DatabaseConstants, ErrorMessages, RelationshipKind
from .exceptions import (
    LengthMismatchError,
    LinkAlchemyError,
    PrimaryKeyRequiredError,
    SchemaError,
    StoreError,
    UnsupportedDataTypeError,
    UnsupportedRelationError,
)
from .identity import (
    copy_model_state,
    get_identity_field_values_map,
    get_identity_field_values_map_from_values,
    get_relation_values,
    to_query_values,
)
from .link_orm import (
    LinkBaseModel,
    belongs_to,
    clear_registry,
    finalize_registry,
    get_metadata,
    get_registered_models,
    get_registry,
    has_many,
    has_one,
    link_field,
    link_model,
    many_to_many,
)
from .link_query import Query
from .link_query_builder import JoinClause, QueryState, SQLQueryBuilder
from .link_query_expressions import And, ColumnRef, Eq, FilterExpression, In, Not, OrderDirection
from .link_schema import FieldDescriptor, JoinTable, Reference, Relationship, Schema, parse_schema
from .link_session import LinkSession, SessionFactory

__version__ = "0.1.0"

__all__ = [
    # Models
    "LinkBaseModel",
    "link_model",
    "link_field",
    "belongs_to",
    "has_one",
    "has_many",
    "many_to_many",
    "get_registry",
    "get_registered_models",
    "get_metadata",
    "finalize_registry",
    "clear_registry",
    # Schema
    "RelationshipKind",
    "FieldDescriptor",
    "Schema",
    "Reference",
    "JoinTable",
    "Relationship",
    "parse_schema",
    # Identity helpers
    "get_identity_field_values_map",
    "get_identity_field_values_map_from_values",
    "get_relation_values",
    "to_query_values",
    "copy_model_state",
    # Query
    "ColumnRef",
    "FilterExpression",
    "Eq",
    "In",
    "Not",
    "And",
    "OrderDirection",
    "Query",
    "QueryState",
    "JoinClause",
    "SQLQueryBuilder",
    # Session
    "LinkSession",
    "SessionFactory",
    # Associations
    "Association",
    "AssignBack",
    "BelongsToReconciler",
    "HasOneReconciler",
    "HasManyReconciler",
    "ManyToManyReconciler",
    "reconciler_for",
    # Errors and constants
    "LinkAlchemyError",
    "SchemaError",
    "UnsupportedRelationError",
    "LengthMismatchError",
    "UnsupportedDataTypeError",
    "PrimaryKeyRequiredError",
    "StoreError",
    "ErrorMessages",
    "DatabaseConstants",
]
