"""Shared fixtures: an in-memory share engine with a small cast of users."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from workspace_share.inmemory import (
    InMemoryActivityRepository,
    InMemoryContentStore,
    InMemoryShareLinkRepository,
    InMemoryShareRepository,
    InMemoryUserDirectory,
)
from workspace_share.sharing import (
    AccessResolver,
    ActivityRecorder,
    LinkShareManager,
    ShareManager,
    UserSearch,
)


@dataclass
class World:
    content: InMemoryContentStore
    users: InMemoryUserDirectory
    share_repo: InMemoryShareRepository
    link_repo: InMemoryShareLinkRepository
    activity_repo: InMemoryActivityRepository
    resolver: AccessResolver
    shares: ShareManager
    links: LinkShareManager
    activity: ActivityRecorder
    search: UserSearch


def build_world(timeout: float = 5.0) -> World:
    content = InMemoryContentStore()
    users = InMemoryUserDirectory()
    share_repo = InMemoryShareRepository(content, users)
    link_repo = InMemoryShareLinkRepository(users)
    activity_repo = InMemoryActivityRepository()
    activity = ActivityRecorder(activity_repo, content, timeout=timeout)

    users.add_user('alice', 'alice')
    users.add_user('bob', 'bob')
    users.add_user('carol', 'carol')
    content.add_workspace('ws_1', 'alice', name='Roadmap', notes='q3 plan')

    return World(
        content=content,
        users=users,
        share_repo=share_repo,
        link_repo=link_repo,
        activity_repo=activity_repo,
        resolver=AccessResolver(content, share_repo, default_timeout=timeout),
        shares=ShareManager(content, users, share_repo, activity, default_timeout=timeout),
        links=LinkShareManager(content, link_repo, activity, default_timeout=timeout),
        activity=activity,
        search=UserSearch(users, default_timeout=timeout),
    )


@pytest.fixture
def world() -> World:
    """alice owns ws_1 ("Roadmap"); bob and carol are other active users."""
    return build_world()


@pytest.fixture
def make_world():
    """Factory for worlds with a custom default timeout."""
    return build_world
