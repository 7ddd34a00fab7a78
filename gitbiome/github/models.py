"""Typed GitHub repository listing models."""

from __future__ import annotations

import msgspec


class DefaultBranchRef(msgspec.Struct, frozen=True, kw_only=True):
    """A repository's default branch: ``prefix`` is e.g. ``refs/heads/``."""

    name: str
    prefix: str


class RepositoryDescriptor(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """One repository as reported by the directory service."""

    url: str
    is_archived: bool = False
    is_disabled: bool = False
    is_locked: bool = False
    default_branch_ref: DefaultBranchRef | None = None


class PageInfo(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """GraphQL connection cursor state."""

    has_next_page: bool = False
    end_cursor: str | None = None


class RepositoryPage(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """One page of the ``repositoryOwner.repositories`` connection."""

    nodes: list[RepositoryDescriptor | None]
    page_info: PageInfo
