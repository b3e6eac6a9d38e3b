"""Models and repositories shared by the test-suite."""

import typing as t
from sqlalchemy import Select
from sqlmodel import Field, SQLModel

from reposcope.repository import Repository, named_scope


class Author(SQLModel, table=True):
    __tablename__ = "authors"

    id: int | None = Field(default=None, primary_key=True)
    name: str = ""


class Post(SQLModel, table=True):
    __tablename__ = "posts"

    id: int | None = Field(default=None, primary_key=True)
    title: str = ""
    email: str = ""
    age: int = 0
    author_id: int | None = Field(default=None, foreign_key="authors.id")
    first_name: str = ""
    last_name: str = ""
    published: bool = False


class PostRepository(Repository[Post]):
    model = Post

    searchable = {
        "query": "title",
        "email": "email",
        "age": "age",
        "name": ["first_name", "last_name"],
        "author": "authors:name,id,author_id",
    }
    orderable = {
        "title": "title",
        "age": "age",
        "author": "authors:name,id,author_id",
    }
    default_order_by = {"title": "asc"}

    @named_scope
    def published(self, builder: Select[t.Any]) -> Select[t.Any]:
        return builder.where(Post.published.is_(True))  # type: ignore[attr-defined]

    @named_scope(name="older_than")
    def age_above(self, builder: Select[t.Any], age: int) -> Select[t.Any]:
        return builder.where(Post.age > age)  # type: ignore[operator]


class AuthorRepository(Repository[Author]):
    model = Author
    searchable = ["name"]
    orderable = ["name"]
