# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Query builder tests: chaining, execution and bulk mutations.
"""

from __future__ import annotations

import pytest

from linkalchemy import ColumnRef, Eq, In, OrderDirection, Query, SchemaError, StoreError

from .models import Language, Post, User


@pytest.fixture
def people(session):
    users = [User(name=name) for name in ("carol", "alice", "bob")]
    session.add_all(users)
    session.flush()
    return users


class TestQueryChaining:
    """Test copy-on-write chaining."""

    def test_chaining_does_not_mutate(self, session):
        base = session.query(User)
        filtered = base.filter_by(name="alice")
        assert base is not filtered
        assert base._state.filters == []
        assert len(filtered._state.filters) == 1

    def test_unscoped_flag(self, session):
        query = session.query(User)
        assert query.is_unscoped is False
        assert query.unscoped().is_unscoped is True
        assert query.is_unscoped is False

    def test_invalid_order_by(self, session):
        with pytest.raises(ValueError):
            session.query(User).order_by(42)

    def test_repr(self, session):
        assert "users" in repr(session.query(User).filter_by(name="a"))


class TestQueryExecution:
    """Test reading rows."""

    def test_all_maps_to_models(self, session, people):
        results = session.query(User).order_by("name").all()
        assert [u.name for u in results] == ["alice", "bob", "carol"]
        assert all(isinstance(u, User) for u in results)
        assert all(u.id is not None for u in results)

    def test_order_desc_limit_offset(self, session, people):
        names = [u.name for u in session.query(User).order_by("-name").offset(1).limit(1)]
        assert names == ["bob"]
        names = [u.name for u in session.query(User).order_by(("name", OrderDirection.DESC)).limit(2)]
        assert names == ["carol", "bob"]

    def test_filter_expressions(self, session, people):
        ids = [people[0].id, people[2].id]
        results = session.query(User).filter(In("id", ids)).exclude(Eq("name", "bob")).all()
        assert [u.name for u in results] == ["carol"]

    def test_first_one_exists_count(self, session, people):
        assert session.query(User).filter_by(name="alice").first().name == "alice"
        assert session.query(User).filter_by(name="zed").first() is None
        assert session.query(User).filter_by(name="bob").one().name == "bob"
        with pytest.raises(ValueError):
            session.query(User).one()
        with pytest.raises(ValueError):
            session.query(User).filter_by(name="zed").one()
        assert session.query(User).exists()
        assert not session.query(User).filter_by(name="zed").exists()
        assert session.query(User).count() == 3

    def test_table_query_returns_dicts(self, session, people):
        rows = session.query("users").filter(Eq(ColumnRef("name", "users"), "alice")).all()
        assert rows == [{"id": people[1].id, "name": "alice", "company_id": None, "manager_id": None}]

    def test_join(self, session, people):
        session.add(Post(title="hello", user_id=people[1].id))
        session.flush()
        results = session.query(User).join("posts", Eq(ColumnRef("user_id", "posts"), ColumnRef("id", "users"))).all()
        assert [u.name for u in results] == ["alice"]

    def test_unknown_column(self, session):
        with pytest.raises(SchemaError):
            session.query(User).filter(Eq("nope", 1)).all()

    def test_unknown_table(self, session):
        with pytest.raises(SchemaError):
            session.query("no_such_table").all()

    def test_no_session(self):
        with pytest.raises(RuntimeError):
            Query(Language).all()


class TestBulkMutations:
    """Test update_columns and delete."""

    def test_update_columns(self, session, people):
        updated = session.query(User).filter(In("name", ["alice", "bob"])).update_columns({"company_id": 5})
        assert updated == 2
        assert session.query(User).filter_by(company_id=5).count() == 2

    def test_delete(self, session, people):
        assert session.query(User).filter_by(name="carol").delete() == 1
        assert session.query(User).count() == 2

    def test_mutations_require_conditions(self, session, people):
        with pytest.raises(StoreError, match="without conditions"):
            session.query(User).update_columns({"company_id": None})
        with pytest.raises(StoreError):
            session.query(User).delete()
        assert session.query(User).count() == 3
