"""Tests for share links: issue, validate, access, revoke, list."""

from __future__ import annotations

import asyncio
import math
from dataclasses import replace
from datetime import timedelta

import pytest

from workspace_share.db.errors import StoreConflictError, StoreError
from workspace_share.errors import (
    InvalidExpiryError,
    LoginRequiredError,
    NotOwnerError,
    ShareInternalError,
    ShareLinkNotFoundError,
    WorkspaceNotFoundError,
)
from workspace_share.sharing.links import (
    MAX_EXPIRES_IN_HOURS,
    MAX_TOKEN_LENGTH,
    validate_expires_in_hours,
)
from workspace_share.sharing.model import ActivityAction, ShareType, hash_token, utcnow


class TestValidateExpiresIn:
    @pytest.mark.parametrize('value', [None, 1, 0.5, 24, MAX_EXPIRES_IN_HOURS])
    def test_accepts(self, value):
        validate_expires_in_hours(value)

    @pytest.mark.parametrize(
        'value',
        [0, -1, -0.5, math.inf, math.nan, MAX_EXPIRES_IN_HOURS + 1, True, '24'],
    )
    def test_rejects(self, value):
        with pytest.raises(InvalidExpiryError):
            validate_expires_in_hours(value)


class TestCreateLink:
    @pytest.mark.asyncio
    async def test_token_returned_once_hash_stored(self, world):
        link = await world.links.create_link('ws_1', 'alice')

        assert link.token is not None
        assert len(link.token) == 64
        assert link.token_hash == hash_token(link.token)
        assert link.requires_login is True
        assert link.expires_at is None

        stored = await world.link_repo.get(link.id)
        assert stored.token is None
        assert stored.token_hash == hash_token(link.token)
        assert link.token not in str(stored.to_dict())

    @pytest.mark.asyncio
    async def test_expiry_from_hours(self, world):
        link = await world.links.create_link('ws_1', 'alice', expires_in_hours=1)
        assert abs(link.expires_at - (utcnow() + timedelta(hours=1))) < timedelta(seconds=5)

    @pytest.mark.asyncio
    async def test_invalid_expiry_checked_first(self, world):
        with pytest.raises(InvalidExpiryError):
            await world.links.create_link('ws_1', 'bob', expires_in_hours=-1)

    @pytest.mark.asyncio
    async def test_requires_owner(self, world):
        with pytest.raises(NotOwnerError):
            await world.links.create_link('ws_1', 'bob')

    @pytest.mark.asyncio
    async def test_records_activity_without_token(self, world):
        link = await world.links.create_link('ws_1', 'alice', requires_login=False)
        [record] = world.activity_repo.records
        assert record.action is ActivityAction.LINK_CREATED
        assert record.share_type is ShareType.LINK
        assert record.metadata['linkId'] == link.id
        assert record.metadata['requiresLogin'] is False
        assert link.token not in str(record.to_dict())

    @pytest.mark.asyncio
    async def test_retries_on_hash_collision(self, world, monkeypatch):
        calls = {'n': 0}
        original = world.link_repo.token_hash_exists

        async def collide_once(token_hash):
            calls['n'] += 1
            if calls['n'] == 1:
                return True
            return await original(token_hash)

        monkeypatch.setattr(world.link_repo, 'token_hash_exists', collide_once)
        link = await world.links.create_link('ws_1', 'alice')
        assert link.token is not None
        assert calls['n'] == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_conflicts(self, world, monkeypatch):
        async def conflict(link):
            raise StoreConflictError(status_code=409, message='duplicate', code='23505')

        monkeypatch.setattr(world.link_repo, 'insert', conflict)
        with pytest.raises(ShareInternalError):
            await world.links.create_link('ws_1', 'alice')


class TestValidateLink:
    @pytest.mark.asyncio
    async def test_valid(self, world):
        link = await world.links.create_link('ws_1', 'alice')
        found = await world.links.validate_link(link.token)
        assert found.id == link.id
        assert found.owner_username == 'alice'

    @pytest.mark.asyncio
    @pytest.mark.parametrize('token', ['', 'nope', 'x' * (MAX_TOKEN_LENGTH + 1)])
    async def test_unknown_or_malformed(self, world, token):
        assert await world.links.validate_link(token) is None

    @pytest.mark.asyncio
    async def test_prefix_of_valid_token_misses(self, world):
        link = await world.links.create_link('ws_1', 'alice')
        assert await world.links.validate_link(link.token[:32]) is None

    @pytest.mark.asyncio
    async def test_expired_link_deactivated(self, world):
        link = await world.links.create_link('ws_1', 'alice', expires_in_hours=1)
        stored = world.link_repo._links[link.id]
        world.link_repo._links[link.id] = replace(
            stored, expires_at=utcnow() - timedelta(seconds=1),
        )

        assert await world.links.validate_link(link.token) is None
        assert (await world.link_repo.get(link.id)).is_active is False

    @pytest.mark.asyncio
    async def test_revoked_link_misses(self, world):
        link = await world.links.create_link('ws_1', 'alice')
        await world.links.revoke_link('ws_1', 'alice', link.id)
        assert await world.links.validate_link(link.token) is None


class TestAccessViaLink:
    @pytest.mark.asyncio
    async def test_anonymous_access_to_public_link(self, world):
        link = await world.links.create_link('ws_1', 'alice', requires_login=False)

        view = await world.links.access_via_link(link.token)

        data = view.to_dict()
        assert data['isReadOnly'] is True
        assert data['name'] == 'Roadmap'
        assert data['shareInfo'] == {'type': 'link', 'owner': 'alice', 'accessCount': 1}

        viewed = world.activity_repo.records[-1]
        assert viewed.action is ActivityAction.VIEWED
        assert viewed.share_type is ShareType.LINK
        assert viewed.user_id is None

    @pytest.mark.asyncio
    async def test_login_required(self, world):
        link = await world.links.create_link('ws_1', 'alice')
        with pytest.raises(LoginRequiredError) as exc_info:
            await world.links.access_via_link(link.token)
        assert exc_info.value.status_code == 401
        assert exc_info.value.to_dict()['requiresLogin'] is True

    @pytest.mark.asyncio
    async def test_login_required_with_principal(self, world):
        link = await world.links.create_link('ws_1', 'alice')
        view = await world.links.access_via_link(link.token, 'carol')
        assert view.is_read_only
        assert world.activity_repo.records[-1].user_id == 'carol'

    @pytest.mark.asyncio
    async def test_unknown_token(self, world):
        with pytest.raises(ShareLinkNotFoundError):
            await world.links.access_via_link('f' * 64, 'bob')

    @pytest.mark.asyncio
    async def test_deleted_workspace(self, world):
        link = await world.links.create_link('ws_1', 'alice', requires_login=False)
        world.content.soft_delete('ws_1')
        with pytest.raises(WorkspaceNotFoundError):
            await world.links.access_via_link(link.token)

    @pytest.mark.asyncio
    async def test_access_count_increments(self, world):
        link = await world.links.create_link('ws_1', 'alice', requires_login=False)
        for _ in range(3):
            await world.links.access_via_link(link.token)
        assert (await world.link_repo.get(link.id)).access_count == 3

    @pytest.mark.asyncio
    async def test_expired_link_stops_counting(self, world):
        link = await world.links.create_link(
            'ws_1', 'alice', requires_login=False, expires_in_hours=1,
        )
        view = await world.links.access_via_link(link.token)
        assert view.access_count == 1

        stored = world.link_repo._links[link.id]
        world.link_repo._links[link.id] = replace(
            stored, expires_at=utcnow() - timedelta(seconds=1),
        )

        with pytest.raises(ShareLinkNotFoundError):
            await world.links.access_via_link(link.token)
        assert (await world.link_repo.get(link.id)).access_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_access_counts_every_view(self, world):
        link = await world.links.create_link('ws_1', 'alice', requires_login=False)
        await asyncio.gather(*(world.links.access_via_link(link.token) for _ in range(10)))
        assert (await world.link_repo.get(link.id)).access_count == 10

    @pytest.mark.asyncio
    async def test_increment_failure_does_not_fail_view(self, world, monkeypatch):
        link = await world.links.create_link('ws_1', 'alice', requires_login=False)

        async def broken(link_id):
            raise StoreError(status_code=500, message='counter down')

        monkeypatch.setattr(world.link_repo, 'increment_access', broken)
        view = await world.links.access_via_link(link.token)
        assert view.access_count == 0


class TestRevokeAndList:
    @pytest.mark.asyncio
    async def test_revoke(self, world):
        link = await world.links.create_link('ws_1', 'alice')
        assert await world.links.revoke_link('ws_1', 'alice', link.id) is True
        assert world.activity_repo.records[-1].action is ActivityAction.LINK_REVOKED
        assert await world.links.revoke_link('ws_1', 'alice', link.id) is False

    @pytest.mark.asyncio
    async def test_revoke_unknown(self, world):
        assert await world.links.revoke_link('ws_1', 'alice', 'link_nope') is False

    @pytest.mark.asyncio
    async def test_revoke_scoped_to_workspace(self, world):
        world.content.add_workspace('ws_2', 'alice', name='Other')
        link = await world.links.create_link('ws_1', 'alice')
        assert await world.links.revoke_link('ws_2', 'alice', link.id) is False

    @pytest.mark.asyncio
    async def test_revoke_requires_owner(self, world):
        link = await world.links.create_link('ws_1', 'alice')
        with pytest.raises(NotOwnerError):
            await world.links.revoke_link('ws_1', 'bob', link.id)

    @pytest.mark.asyncio
    async def test_list_hides_tokens_and_inactive(self, world):
        keep = await world.links.create_link('ws_1', 'alice')
        await asyncio.sleep(0.001)
        gone = await world.links.create_link('ws_1', 'alice')
        await world.links.revoke_link('ws_1', 'alice', gone.id)

        active = await world.links.list_links('ws_1', 'alice')
        assert [l.id for l in active] == [keep.id]
        assert all(l.token is None for l in active)

        everything = await world.links.list_links('ws_1', 'alice', include_inactive=True)
        assert [l.id for l in everything] == [gone.id, keep.id]

    @pytest.mark.asyncio
    async def test_list_requires_owner(self, world):
        with pytest.raises(NotOwnerError):
            await world.links.list_links('ws_1', 'bob')
