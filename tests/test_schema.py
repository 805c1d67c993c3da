# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Schema parsing and relationship reference resolution tests.

Tests cover:
- Model registration and table naming
- Column fields, primary keys and generated tables
- Reference inference for every relationship kind
- Polymorphic (pinned) references and join tables
- Malformed metadata surfacing as SchemaError
"""

from __future__ import annotations

from typing import List, Optional

import pytest
from pydantic import BaseModel
from sqlalchemy import Boolean, Integer, String

from linkalchemy import (
    LinkBaseModel,
    RelationshipKind,
    SchemaError,
    get_metadata,
    get_registered_models,
    get_registry,
    has_many,
    link_field,
    link_model,
    many_to_many,
    parse_schema,
)
from linkalchemy.link_orm import pluralize, singularize

from .models import Comment, Company, Language, Membership, Post, Profile, Shelf, User


class TestModelRegistration:
    """Test the link_model decorator and the registry."""

    def test_default_table_names(self):
        """Table names default to the pluralized snake_case class name."""
        assert User.get_table_name() == "users"
        assert Membership.get_table_name() == "memberships"
        assert Language.get_table_name() == "languages"
        assert Company.get_table_name() == "companies"
        assert Shelf.get_table_name() == "shelves"

    def test_only_the_last_word_is_pluralized(self):
        @link_model()
        class DeliveryCompany(LinkBaseModel):
            id: Optional[int] = link_field(primary_key=True, auto_increment=True)

        assert DeliveryCompany.get_table_name() == "delivery_companies"
        assert pluralize("box") == "boxes"
        assert singularize("best_friends") == "best_friend"
        assert singularize("code") == "code"

    def test_explicit_table_name(self):
        """An explicit table name overrides the default."""
        @link_model("ledger_entries_explicit")
        class LedgerEntry(LinkBaseModel):
            id: Optional[int] = link_field(primary_key=True, auto_increment=True)

        assert LedgerEntry.get_table_name() == "ledger_entries_explicit"
        assert get_registered_models()["ledger_entries_explicit"] is LedgerEntry

    def test_unregistered_model_has_no_table(self):
        """Undecorated subclasses are not registered."""
        class Unregistered(LinkBaseModel):
            id: int = link_field(primary_key=True)

        with pytest.raises(SchemaError):
            Unregistered.get_table_name()

    def test_lookup_by_class_name(self):
        """Models can be looked up by class or table name."""
        registry = get_registry()
        assert registry.get_model_by_name("Membership") is Membership
        assert registry.get_model_by_name("memberships") is Membership
        assert registry.get_model_by_name("Nope") is None

    def test_redefined_model_uses_its_own_metadata(self):
        """Each definition of a table is parsed from its own field metadata."""
        for key in ("a", "b", "a", "b"):
            @link_model("rotating_keys")
            class RotatingKey(LinkBaseModel):
                a: Optional[int] = link_field(primary_key=key == "a")
                b: Optional[int] = link_field(primary_key=key == "b")

            assert get_registered_models()["rotating_keys"] is RotatingKey
            assert parse_schema(RotatingKey).primary_field_columns == [key]


class TestSchemaParsing:
    """Test column fields and generated tables."""

    def test_schema_is_cached(self):
        """Parsing twice returns the same schema."""
        assert parse_schema(User) is parse_schema(User)

    def test_column_fields_exclude_relationships(self):
        """Association fields are not columns."""
        schema = parse_schema(User)
        names = [f.name for f in schema.column_fields]
        assert names == ["id", "name", "company_id", "manager_id"]
        assert schema.fields["posts"].is_relationship
        assert schema.fields["posts"].is_many
        assert not schema.fields["company"].is_many

    def test_table_columns_and_types(self):
        """Column types are inferred from the annotations."""
        table = parse_schema(User).table
        assert table is get_metadata().tables["users"]
        assert isinstance(table.c.id.type, Integer)
        assert isinstance(table.c.name.type, String)
        assert table.c.id.primary_key
        assert table.c.company_id.nullable
        assert not table.c.name.nullable

    def test_composite_primary_key(self):
        """Several primary key fields form a composite key."""
        schema = parse_schema(Membership)
        assert schema.primary_field_columns == ["user_id", "club_id"]
        assert isinstance(schema.table.c.active.type, Boolean)

    def test_from_row_builds_instance(self):
        """Rows keyed by column name become model instances."""
        post = parse_schema(Post).from_row({"id": 3, "user_id": 1, "title": "t"})
        assert isinstance(post, Post)
        assert post.id == 3 and post.user_id == 1 and post.title == "t"

    def test_field_descriptor_zero_values(self):
        """None and empty collections are zero."""
        schema = parse_schema(User)
        user = User(name="a")
        assert schema.fields["id"].value_of(user) == (None, True)
        assert schema.fields["name"].value_of(user) == ("a", False)
        assert schema.fields["posts"].value_of(user) == ([], True)
        assert schema.fields["posts"].zero_value() == []
        assert schema.fields["company"].zero_value() is None


class TestRelationshipReferences:
    """Test reference inference per relationship kind."""

    def test_belongs_to_references(self):
        """belongs_to: FK on the owner, primary key on the related model."""
        rel = parse_schema(User).relationships["company"]
        assert rel.kind == RelationshipKind.BELONGS_TO
        assert rel.field_schema.model_class is Company
        (ref,) = rel.references
        assert ref.foreign_key.name == "company_id"
        assert ref.primary_key.name == "id"
        assert ref.own_primary_key is False
        assert rel.join_table is None

    def test_has_one_references(self):
        """has_one: FK on the related model, referencing the owner key."""
        rel = parse_schema(User).relationships["profile"]
        (ref,) = rel.references
        assert rel.field_schema.model_class is Profile
        assert ref.foreign_key.name == "user_id"
        assert ref.primary_key.name == "id"
        assert ref.own_primary_key is True

    def test_self_referencing_has_many(self):
        """An explicit foreign key on the same model."""
        rel = parse_schema(User).relationships["team"]
        (ref,) = rel.references
        assert rel.field_schema is rel.schema
        assert ref.foreign_key.name == "manager_id"
        assert ref.own_primary_key is True

    def test_polymorphic_references_are_pinned(self):
        """The type column is pinned to the owner's table name."""
        user_rel = parse_schema(User).relationships["comments"]
        company_rel = parse_schema(Company).relationships["comments"]
        assert user_rel.field_schema.model_class is Comment

        id_ref, type_ref = user_rel.references
        assert id_ref.foreign_key.name == "owner_id"
        assert id_ref.own_primary_key is True
        assert type_ref.foreign_key.name == "owner_type"
        assert type_ref.is_pinned
        assert type_ref.primary_key is None
        assert type_ref.primary_value == "users"
        assert company_rel.references[1].primary_value == "companies"

    def test_many_to_many_join_table(self):
        """Join columns default to <model>_<pk> on both sides."""
        rel = parse_schema(User).relationships["languages"]
        join_table = rel.join_table
        assert join_table.name == "user_languages"
        assert set(join_table.table.c.keys()) == {"user_id", "language_code"}
        assert {c.name for c in join_table.table.primary_key.columns} == {"user_id", "language_code"}
        assert isinstance(join_table.table.c.language_code.type, String)

        own, related = rel.references
        assert own.own_primary_key and own.foreign_key.column == "user_id"
        assert not related.own_primary_key and related.foreign_key.column == "language_code"
        assert related.primary_key.name == "code"

    def test_self_referencing_many_to_many(self):
        """The related-side join column is named after the field."""
        rel = parse_schema(User).relationships["friends"]
        assert set(rel.join_table.table.c.keys()) == {"user_id", "friend_id"}

    def test_join_model_and_filters(self):
        """A registered model can act as the join table, with default filters."""
        rel = parse_schema(User).relationships["clubs"]
        assert rel.join_table.model_class is Membership
        assert rel.join_table.table is parse_schema(Membership).table
        (join_filter,) = rel.join_table.query_filters
        assert join_filter.column.name == "active"
        assert join_filter.value is True

    def test_relationships_are_shared(self):
        """Descriptors are built once and shared."""
        assert parse_schema(User).relationships["posts"] is parse_schema(User).relationships["posts"]


class TestSchemaErrors:
    """Test malformed metadata."""

    def test_plain_pydantic_model_rejected(self):
        class Plain(BaseModel):
            id: int

        with pytest.raises(SchemaError):
            parse_schema(Plain)

    def test_missing_primary_key(self):
        @link_model("keyless_rows")
        class KeylessRow(LinkBaseModel):
            name: str = link_field()

        with pytest.raises(SchemaError, match="no primary key"):
            parse_schema(KeylessRow)

    def test_missing_foreign_key_field(self):
        """The default FK <owner>_id does not exist on Post."""
        @link_model("orphan_authors")
        class OrphanAuthor(LinkBaseModel):
            id: Optional[int] = link_field(primary_key=True, auto_increment=True)
            posts: List[Post] = has_many()

        with pytest.raises(SchemaError, match="orphan_author_id"):
            parse_schema(OrphanAuthor)
        assert get_registry().get_cached_schema(OrphanAuthor) is None

    def test_non_model_association_element(self):
        @link_model("tag_holders")
        class TagHolder(LinkBaseModel):
            id: Optional[int] = link_field(primary_key=True, auto_increment=True)
            tags: List[str] = has_many()

        with pytest.raises(SchemaError, match="must be annotated"):
            parse_schema(TagHolder)

    def test_cardinality_mismatch(self):
        """A to-many declaration needs a list annotation."""
        @link_model("single_post_holders")
        class SinglePostHolder(LinkBaseModel):
            id: Optional[int] = link_field(primary_key=True, auto_increment=True)
            post: Optional[Post] = has_many(foreign_key="user_id")

        with pytest.raises(SchemaError):
            parse_schema(SinglePostHolder)

    def test_unknown_join_column(self):
        @link_model("badly_joined")
        class BadlyJoined(LinkBaseModel):
            id: Optional[int] = link_field(primary_key=True, auto_increment=True)
            clubs: List[Language] = many_to_many("memberships", join_model=Membership)

        with pytest.raises(SchemaError, match="join column"):
            parse_schema(BadlyJoined)
