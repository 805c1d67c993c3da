# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Models shared by the LinkAlchemy test suite.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import ConfigDict

from linkalchemy import (
    LinkBaseModel,
    belongs_to,
    has_many,
    has_one,
    link_field,
    link_model,
    many_to_many,
)


@link_model()
class Company(LinkBaseModel):
    id: Optional[int] = link_field(primary_key=True, auto_increment=True)
    name: str = link_field()

    comments: List[Comment] = has_many(polymorphic="owner")
    logo: Optional[Logo] = has_one(polymorphic="owner")


@link_model()
class User(LinkBaseModel):
    id: Optional[int] = link_field(primary_key=True, auto_increment=True)
    name: str = link_field()
    company_id: Optional[int] = link_field(default=None)
    manager_id: Optional[int] = link_field(default=None)

    company: Optional[Company] = belongs_to()
    manager: Optional[User] = belongs_to()
    team: List[User] = has_many(foreign_key="manager_id")
    profile: Optional[Profile] = has_one()
    posts: List[Post] = has_many()
    comments: List[Comment] = has_many(polymorphic="owner")
    languages: List[Language] = many_to_many("user_languages")
    friends: List[User] = many_to_many("user_friends")
    clubs: List[Club] = many_to_many("memberships", join_model="Membership", join_filters={"active": True})


@link_model()
class Profile(LinkBaseModel):
    id: Optional[int] = link_field(primary_key=True, auto_increment=True)
    user_id: Optional[int] = link_field(default=None)
    bio: str = link_field(default="")


@link_model()
class Post(LinkBaseModel):
    id: Optional[int] = link_field(primary_key=True, auto_increment=True)
    user_id: Optional[int] = link_field(default=None, index=True)
    title: str = link_field()


@link_model()
class Comment(LinkBaseModel):
    id: Optional[int] = link_field(primary_key=True, auto_increment=True)
    body: str = link_field()
    owner_id: Optional[int] = link_field(default=None)
    owner_type: Optional[str] = link_field(default=None)


@link_model()
class Language(LinkBaseModel):
    code: str = link_field(primary_key=True)
    name: str = link_field(default="")


@link_model()
class Club(LinkBaseModel):
    id: Optional[int] = link_field(primary_key=True, auto_increment=True)
    name: str = link_field()


@link_model()
class Membership(LinkBaseModel):
    user_id: int = link_field(primary_key=True)
    club_id: int = link_field(primary_key=True)
    active: bool = link_field(default=True)


@link_model()
class Logo(LinkBaseModel):
    id: Optional[int] = link_field(primary_key=True, auto_increment=True)
    url: str = link_field()
    owner_id: Optional[int] = link_field(default=None)
    owner_type: Optional[str] = link_field(default=None)


# Books are copied, not shared, when assigned to a field
@link_model()
class Book(LinkBaseModel):
    model_config = ConfigDict(revalidate_instances="always")

    id: Optional[int] = link_field(primary_key=True, auto_increment=True)
    shelf_id: Optional[int] = link_field(default=None)
    title: str = link_field()


@link_model()
class Shelf(LinkBaseModel):
    id: Optional[int] = link_field(primary_key=True, auto_increment=True)
    label: str = link_field()

    books: List[Book] = has_many()


ALL_MODELS = [Company, User, Profile, Post, Comment, Language, Club, Membership, Logo, Book, Shelf]

for _model in ALL_MODELS:
    _model.model_rebuild()
