# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Association error state tests: the first error poisons the handle.
"""

from __future__ import annotations

import logging

import pytest
from sqlalchemy.exc import SQLAlchemyError

from linkalchemy import (
    LinkAlchemyError,
    LinkSession,
    PrimaryKeyRequiredError,
    StoreError,
    UnsupportedDataTypeError,
    UnsupportedRelationError,
    get_metadata,
)

from .models import Language, Post, User


class TestUnresolvedRelation:
    """Test unknown relationship names."""

    def test_error_at_creation(self, session):
        assoc = session.association(User(name="alice"), "nope")
        assert isinstance(assoc.error, UnsupportedRelationError)
        assert str(assoc.error) == "unsupported relations: nope"
        assert assoc.relationship is None
        assert not assoc.ok

    def test_every_operation_returns_the_same_error(self, session):
        assoc = session.association(User(name="alice"), "nope")
        error = assoc.error
        out = []
        assert assoc.find(out) is error
        assert assoc.append(Post(title="a")) is error
        assert assoc.replace() is error
        assert assoc.delete() is error
        assert assoc.clear() is error
        assert assoc.count() == 0
        assert session.query(Post).count() == 0

    def test_raise_for_error(self, session):
        assoc = session.association(User(name="alice"), "nope")
        with pytest.raises(UnsupportedRelationError):
            assoc.raise_for_error()
        session.association(User(name="bob"), "posts").raise_for_error()

    def test_poisoned_calls_are_logged(self, session, caplog):
        assoc = session.association(User(name="alice"), "nope")
        with caplog.at_level(logging.WARNING, logger="linkalchemy.association"):
            assoc.count()
        assert any("nope" in record.getMessage() for record in caplog.records)


class TestInvalidValues:
    """Test type incompatibility and invalid arguments."""

    def test_type_mismatch_poisons_handle(self, session):
        user = User(name="alice")
        assoc = session.association(user, "posts")
        error = assoc.append(Language(code="en"))
        assert isinstance(error, UnsupportedDataTypeError)
        assert isinstance(error, TypeError)
        assert "Language" in str(error) and "posts" in str(error)

        assert assoc.append(Post(title="valid")) is error
        assert session.query(Post).count() == 0
        assert user.posts == []

    def test_type_mismatch_on_to_one(self, session):
        assoc = session.association(User(name="alice"), "company")
        assert isinstance(assoc.append(Post(title="nope")), UnsupportedDataTypeError)

    def test_invalid_source(self, session):
        assoc = session.association({"name": "alice"}, "posts")
        assert isinstance(assoc.error, UnsupportedDataTypeError)

    def test_invalid_find_target(self, session):
        user = User(name="alice")
        session.add(user)
        assoc = session.association(user, "posts")
        assert isinstance(assoc.find({}), UnsupportedDataTypeError)

    def test_errors_share_a_base_class(self, session):
        assoc = session.association(User(name="alice"), "nope")
        assert isinstance(assoc.error, LinkAlchemyError)
        assert isinstance(assoc.error, ValueError)


class TestStoreFailure:
    """Test failures reported by the session and the database."""

    def test_store_failure_poisons_handle(self, engine):
        get_metadata().tables["posts"].drop(engine)
        session = LinkSession(engine=engine)
        try:
            user = User(name="alice")
            assoc = session.association(user, "posts")
            error = assoc.append(Post(title="a"))
            assert isinstance(error, StoreError)
            assert isinstance(error.__cause__, SQLAlchemyError)

            # later steps never run
            assert assoc.append(Post(title="b")) is error
            assert assoc.count() == 0
        finally:
            session.close()

    def test_failed_pending_flush_is_recorded(self, session):
        """A pending delete that cannot run poisons the handle instead of raising."""
        session.delete(Post(title="never saved"))
        assoc = session.association(User(name="alice"), "posts")

        error = assoc.append(Post(title="a"))
        assert isinstance(error, PrimaryKeyRequiredError)
        assert "without primary key" in str(error)
        assert assoc.append(Post(title="b")) is error

    def test_closed_session_is_recorded(self, engine):
        session = LinkSession(engine=engine)
        session.close()
        assoc = session.association(User(name="alice"), "posts")

        assert assoc.count() == 0
        assert isinstance(assoc.error, StoreError)
        assert "closed" in str(assoc.error)
