# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Session management for LinkAlchemy with statement execution and transaction support.

A :class:`LinkSession` owns one SQLAlchemy ``Connection``. Instances added to the
session are written on flush; association handles obtained through
:meth:`LinkSession.association` persist through :meth:`LinkSession.save_association`.
"""

from __future__ import annotations
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar, Union
from contextlib import contextmanager
import logging

from sqlalchemy import insert
from sqlalchemy.engine import Connection, Engine, Result
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError

from .association import Association
from .constants import DatabaseConstants, ErrorMessages, LoggingConstants, RelationshipKind
from .exceptions import PrimaryKeyRequiredError, StoreError
from .link_query import Query
from .link_query_expressions import ColumnRef, Eq, FilterExpression
from .link_schema import FieldDescriptor, Relationship, Schema, schema_of

ModelType = TypeVar("ModelType")

logger = logging.getLogger(__name__)


class LinkSession:
    """
    Session for executing statements and managing transactions.
    Provides a SQLAlchemy-like interface over LinkAlchemy models.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        url: Optional[str] = None,
        autoflush: bool = True,
        autocommit: bool = False,
        echo: bool = DatabaseConstants.DEFAULT_ECHO,
    ):
        """
        Initialize a session.

        Args:
            engine: Existing engine to use
            url: Database URL if creating a new engine
            autoflush: Whether to flush pending instances before executing statements
            autocommit: Whether to commit after add/delete
            echo: SQLAlchemy statement echo for an engine created from ``url``
        """
        if engine is not None:
            self._engine = engine
            self._owns_engine = False
        elif url:
            self._engine = create_engine(url, echo=echo)
            self._owns_engine = True
        else:
            raise ValueError(ErrorMessages.SESSION_SOURCE_REQUIRED)

        self._conn: Connection = self._engine.connect()
        self.autoflush = autoflush
        self.autocommit = autocommit
        self._new: List[Any] = []
        self._deleted: List[Any] = []
        self._flushing = False
        self._closed = False

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def connection(self) -> Connection:
        return self._conn

    def query(self, target: Union[Type[ModelType], str]) -> Query[ModelType]:
        """
        Create a query for a model class or a bare table name.

        Args:
            target: The model class (rows mapped to instances) or table name (rows as dicts)

        Returns:
            Query object for building and executing queries
        """
        return Query(target, session=self)

    def association(
        self,
        source: Any,
        name: str,
        unscoped: bool = False,
        model_class: Optional[Type[Any]] = None,
    ) -> Association:
        """
        Association handle for relationship ``name`` of ``source``.

        ``source`` is a model instance or a list of instances. ``model_class`` is
        only needed when ``source`` is an empty list.
        """
        return Association(self, source, name, unscoped=unscoped, model_class=model_class)

    def execute(self, statement: Any) -> Result:
        """
        Execute a SQLAlchemy statement.

        Raises:
            StoreError: if the database rejects the statement
        """
        if self._closed:
            raise StoreError(ErrorMessages.SESSION_CLOSED)
        self._autoflush()

        logger.debug(LoggingConstants.EXECUTE_STATEMENT, statement)
        try:
            return self._conn.execute(statement)
        except SQLAlchemyError as e:
            raise StoreError(ErrorMessages.STORE_FAILED.format(error=e)) from e

    def _has_pending_operations(self) -> bool:
        return bool(self._new or self._deleted)

    def _autoflush(self) -> None:
        if self.autoflush and not self._flushing and self._has_pending_operations():
            self.flush()

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    def add(self, instance: Any) -> None:
        """
        Add an instance to the session for insertion (or update, when it already exists).

        Args:
            instance: Model instance to add
        """
        if not any(pending is instance for pending in self._new):
            self._new.append(instance)

        if self.autocommit:
            self.commit()

    def add_all(self, instances: List[Any]) -> None:
        """
        Add multiple instances to the session.

        Args:
            instances: List of model instances to add
        """
        for instance in instances:
            self.add(instance)

    def delete(self, instance: Any) -> None:
        """
        Mark an instance for deletion.

        Args:
            instance: Model instance to delete
        """
        self._new = [pending for pending in self._new if pending is not instance]
        if not any(pending is instance for pending in self._deleted):
            self._deleted.append(instance)

        if self.autocommit:
            self.commit()

    def flush(self) -> None:
        """
        Flush pending changes to the database without committing.
        """
        if self._flushing:
            return

        self._flushing = True
        try:
            for instance in self._new:
                self.save(instance)
            for instance in self._deleted:
                self._delete_instance(instance)

            self._new.clear()
            self._deleted.clear()
        finally:
            self._flushing = False

    def commit(self) -> None:
        """
        Flush all pending operations and commit the transaction.
        """
        self.flush()
        try:
            self._conn.commit()
        except SQLAlchemyError as e:
            raise StoreError(ErrorMessages.STORE_FAILED.format(error=e)) from e

    def rollback(self) -> None:
        """
        Discard pending operations and roll back the transaction.
        """
        self._new.clear()
        self._deleted.clear()
        if not self._closed:
            self._conn.rollback()

    def close(self) -> None:
        """
        Close the session.
        """
        if self._closed:
            return
        self.rollback()
        self._conn.close()
        self._closed = True

        if self._owns_engine:
            self._engine.dispose()

    @contextmanager
    def begin(self) -> Iterator["LinkSession"]:
        """
        Transaction context manager: commit on success, roll back on failure.
        """
        original_autocommit = self.autocommit
        self.autocommit = False
        try:
            yield self
            self.commit()
        except (RuntimeError, ValueError, TypeError) as e:
            self.rollback()
            raise e
        except Exception as e:
            self.rollback()
            raise RuntimeError(ErrorMessages.UNEXPECTED_TRANSACTION_ERROR.format(
                type_name=type(e).__name__, error=e
            )) from e
        finally:
            self.autocommit = original_autocommit

    # -------------------------------------------------------------------------
    # Row persistence
    # -------------------------------------------------------------------------

    def save(self, instance: Any) -> Any:
        """Insert ``instance``, or update every column when its row already exists."""
        self._autoflush()
        schema = schema_of(instance)
        self._save_columns(schema, instance, schema.column_fields)
        return instance

    def _primary_key_filters(self, schema: Schema, instance: Any) -> List[FilterExpression]:
        return [Eq(ColumnRef(fd.column, schema.table_name), fd.value_of(instance)[0]) for fd in schema.primary_fields]

    def _exists(self, schema: Schema, instance: Any) -> bool:
        if not schema.has_primary_key(instance):
            return False
        return self.query(schema.model_class).filter(*self._primary_key_filters(schema, instance)).count() > 0

    def _insert(self, schema: Schema, instance: Any) -> None:
        """Insert ``instance`` and write generated keys back onto it."""
        result = self.execute(insert(schema.table).values(schema.column_values(instance)))

        inserted = result.inserted_primary_key
        if inserted is None:
            return
        generated = dict(zip([c.name for c in schema.table.primary_key.columns], inserted))
        for fd in schema.primary_fields:
            if fd.value_of(instance)[1] and generated.get(fd.column) is not None:
                fd.set(instance, generated[fd.column])

    def _insert_if_new(self, schema: Schema, instance: Any) -> None:
        """Insert ``instance`` unless its row exists; existing rows are left untouched."""
        if not self._exists(schema, instance):
            self._insert(schema, instance)

    def _save_columns(self, schema: Schema, instance: Any, fields: List[FieldDescriptor]) -> None:
        """Insert ``instance`` when new; otherwise update only ``fields``."""
        if not self._exists(schema, instance):
            self._insert(schema, instance)
            return
        values = {fd.column: fd.value_of(instance)[0] for fd in fields if not fd.primary_key}
        if values:
            self.query(schema.model_class).filter(*self._primary_key_filters(schema, instance)).update_columns(values)

    def _delete_instance(self, instance: Any) -> None:
        schema = schema_of(instance)
        if not schema.has_primary_key(instance):
            raise PrimaryKeyRequiredError(ErrorMessages.CANNOT_DELETE_WITHOUT_PK.format(model_name=schema.model_class.__name__))
        self.query(schema.model_class).filter(*self._primary_key_filters(schema, instance)).delete()

    def save_association(self, instance: Any, relationship: Relationship) -> None:
        """
        Persist ``instance`` together with the current members of ``relationship``.

        Foreign keys are propagated along the references before each write, so the
        object graph and the rows agree once this returns.
        """
        logger.debug(LoggingConstants.SAVE_ASSOCIATION, relationship.kind.value, relationship.name, type(instance).__name__)
        # pending rows must exist before keys are compared
        self._autoflush()

        schema = relationship.schema
        related = relationship.field_schema
        value, zero = relationship.field.value_of(instance)
        members = [] if zero else (list(value) if relationship.field.is_many else [value])

        if relationship.kind == RelationshipKind.BELONGS_TO:
            # @@ STEP 1: Related row first; its key feeds the owner's foreign key
            for member in members:
                self._insert_if_new(related, member)
                for ref in relationship.references:
                    if ref.is_pinned:
                        ref.foreign_key.set(instance, ref.primary_value)
                    else:
                        ref.foreign_key.set(instance, ref.primary_key.value_of(member)[0])
            self._save_columns(schema, instance, [ref.foreign_key for ref in relationship.references])
            return

        # @@ STEP 2: Owner row first; its key feeds the related rows or the join rows
        self._save_columns(schema, instance, [])

        if relationship.kind in (RelationshipKind.HAS_ONE, RelationshipKind.HAS_MANY):
            for member in members:
                for ref in relationship.references:
                    if ref.own_primary_key:
                        ref.foreign_key.set(member, ref.primary_key.value_of(instance)[0])
                    elif ref.is_pinned:
                        ref.foreign_key.set(member, ref.primary_value)
                self._save_columns(related, member, [ref.foreign_key for ref in relationship.references])
            return

        join_table = relationship.join_table
        for member in members:
            self._insert_if_new(related, member)

            row: Dict[str, Any] = {}
            for ref in relationship.references:
                if ref.is_pinned:
                    row[ref.foreign_key.column] = ref.primary_value
                else:
                    owner = instance if ref.own_primary_key else member
                    row[ref.foreign_key.column] = ref.primary_key.value_of(owner)[0]
            # || S.2.1: Rows created here must satisfy the join table's default filters
            for query_filter in join_table.query_filters:
                row.setdefault(query_filter.column.name, query_filter.value)

            key_filters = [Eq(ColumnRef(column, join_table.name), row[column]) for column in join_table.fields]
            if self.query(join_table.name).filter(*key_filters).count() == 0:
                self.execute(insert(join_table.table).values(row))

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        _ = exc_val, exc_tb  # Mark as intentionally unused
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self.close()

    def __repr__(self) -> str:
        """String representation."""
        return f"<LinkSession(autocommit={self.autocommit}, closed={self._closed})>"


class SessionFactory:
    """Factory for creating sessions with consistent configuration."""

    def __init__(
        self,
        url: Optional[str] = None,
        engine: Optional[Engine] = None,
        **default_kwargs
    ):
        """
        Initialize session factory.

        Args:
            url: Database URL; one engine is created and shared by every session
            engine: Existing engine to share instead of ``url``
            **default_kwargs: Default session configuration
        """
        if engine is None:
            if not url:
                raise ValueError(ErrorMessages.SESSION_SOURCE_REQUIRED)
            engine = create_engine(url, echo=default_kwargs.pop("echo", DatabaseConstants.DEFAULT_ECHO))
        self.engine = engine
        self.default_kwargs = default_kwargs

    def create_session(self, **kwargs) -> LinkSession:
        """
        Create a new session.

        Args:
            **kwargs: Override default configuration

        Returns:
            New LinkSession instance
        """
        config = {**self.default_kwargs, **kwargs}
        return LinkSession(engine=self.engine, **config)

    @contextmanager
    def session_scope(self, **kwargs):
        """
        Provide a transactional scope for a series of operations.

        Args:
            **kwargs: Override default configuration

        Yields:
            LinkSession instance
        """
        session = self.create_session(**kwargs)
        try:
            yield session
            session.commit()
        except (RuntimeError, ValueError, TypeError) as e:
            session.rollback()
            raise e
        except Exception as e:
            session.rollback()
            raise RuntimeError(ErrorMessages.UNEXPECTED_TRANSACTION_ERROR.format(
                type_name=type(e).__name__, error=e
            )) from e
        finally:
            session.close()

    def __call__(self, **kwargs) -> LinkSession:
        """Allow factory to be called directly."""
        return self.create_session(**kwargs)
