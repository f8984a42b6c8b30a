"""HTTP tests for the share router with an in-memory engine and fake auth.

The fake auth middleware reads ``X-Test-User``; requests without it are
anonymous.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from workspace_share.db.errors import StoreError
from workspace_share.security.token_verify import AuthIdentity
from workspace_share.sharing.model import hash_token
from workspace_share.sharing.routes import create_share_router, register_error_handlers


def _make_app(world, public_base_url: str = 'https://share.example.com') -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(create_share_router(
        resolver=world.resolver,
        shares=world.shares,
        links=world.links,
        activity=world.activity,
        users=world.search,
        public_base_url=public_base_url,
    ))

    @app.middleware('http')
    async def fake_auth(request: Request, call_next):
        user_id = request.headers.get('x-test-user')
        request.state.auth_identity = (
            AuthIdentity(user_id=user_id, username=user_id) if user_id else None
        )
        return await call_next(request)

    return app


def _as(user_id: str) -> dict[str, str]:
    return {'X-Test-User': user_id}


@pytest.fixture
def client(world):
    transport = ASGITransport(app=_make_app(world))
    return AsyncClient(transport=transport, base_url='http://test')


# =====================================================================
# Direct shares
# =====================================================================


class TestDirectShareRoutes:
    @pytest.mark.asyncio
    async def test_share_view_revoke_flow(self, client):
        resp = await client.post(
            '/workspaces/ws_1/shares', json={'shareWithUserId': 'bob'}, headers=_as('alice'),
        )
        assert resp.status_code == 201
        share = resp.json()
        assert share['sharedWithUserId'] == 'bob'
        assert share['sharedWithUsername'] == 'bob'

        resp = await client.get('/workspaces/ws_1', headers=_as('bob'))
        assert resp.status_code == 200
        workspace = resp.json()['workspace']
        assert workspace['isReadOnly'] is True
        assert workspace['shareInfo'] == {'type': 'direct', 'owner': 'alice'}

        resp = await client.delete('/workspaces/ws_1/shares/bob', headers=_as('alice'))
        assert resp.status_code == 204

        resp = await client.get('/workspaces/ws_1', headers=_as('bob'))
        assert resp.status_code == 403
        assert resp.json()['detail']['error'] == 'access_denied'

    @pytest.mark.asyncio
    async def test_owner_view_is_editable(self, client):
        resp = await client.get('/workspaces/ws_1', headers=_as('alice'))
        assert resp.status_code == 200
        assert resp.json()['workspace']['isReadOnly'] is False

    @pytest.mark.asyncio
    async def test_self_share_400(self, client):
        resp = await client.post(
            '/workspaces/ws_1/shares', json={'shareWithUserId': 'alice'}, headers=_as('alice'),
        )
        assert resp.status_code == 400
        assert resp.json()['error'] == 'self_share'

    @pytest.mark.asyncio
    async def test_unknown_recipient_404(self, client):
        resp = await client.post(
            '/workspaces/ws_1/shares', json={'shareWithUserId': 'zed'}, headers=_as('alice'),
        )
        assert resp.status_code == 404
        assert resp.json()['error'] == 'user_not_found'

    @pytest.mark.asyncio
    async def test_duplicate_409(self, client):
        body = {'shareWithUserId': 'bob'}
        await client.post('/workspaces/ws_1/shares', json=body, headers=_as('alice'))
        resp = await client.post('/workspaces/ws_1/shares', json=body, headers=_as('alice'))
        assert resp.status_code == 409
        assert resp.json()['error'] == 'already_shared'

    @pytest.mark.asyncio
    async def test_past_expiry_400(self, client):
        resp = await client.post(
            '/workspaces/ws_1/shares',
            json={'shareWithUserId': 'bob', 'expiresAt': '2000-01-01T00:00:00Z'},
            headers=_as('alice'),
        )
        assert resp.status_code == 400
        assert resp.json()['error'] == 'invalid_expiry'

    @pytest.mark.asyncio
    async def test_missing_recipient_400(self, client):
        resp = await client.post('/workspaces/ws_1/shares', json={}, headers=_as('alice'))
        assert resp.status_code == 400
        body = resp.json()
        assert body['error'] == 'validation_error'
        assert body['errors'][0]['field'] == 'shareWithUserId'

    @pytest.mark.asyncio
    async def test_unparseable_expiry_400(self, client, world):
        resp = await client.post(
            '/workspaces/ws_1/shares',
            json={'shareWithUserId': 'bob', 'expiresAt': 'garbage'},
            headers=_as('alice'),
        )
        assert resp.status_code == 400
        assert resp.json()['error'] == 'validation_error'
        assert world.share_repo.rows == []

    @pytest.mark.asyncio
    async def test_non_owner_cannot_share(self, client):
        resp = await client.post(
            '/workspaces/ws_1/shares', json={'shareWithUserId': 'carol'}, headers=_as('bob'),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_viewer_cannot_share_onward(self, client):
        await client.post(
            '/workspaces/ws_1/shares', json={'shareWithUserId': 'bob'}, headers=_as('alice'),
        )
        resp = await client.post(
            '/workspaces/ws_1/shares', json={'shareWithUserId': 'carol'}, headers=_as('bob'),
        )
        assert resp.status_code == 403
        assert resp.json()['detail']['error'] == 'not_owner'

    @pytest.mark.asyncio
    async def test_list_shares(self, client):
        await client.post(
            '/workspaces/ws_1/shares', json={'shareWithUserId': 'bob'}, headers=_as('alice'),
        )
        resp = await client.get('/workspaces/ws_1/shares', headers=_as('alice'))
        assert resp.status_code == 200
        assert [s['sharedWithUsername'] for s in resp.json()['shares']] == ['bob']

    @pytest.mark.asyncio
    async def test_revoke_missing_404(self, client):
        resp = await client.delete('/workspaces/ws_1/shares/bob', headers=_as('alice'))
        assert resp.status_code == 404
        assert resp.json()['error'] == 'share_not_found'

    @pytest.mark.asyncio
    async def test_revoke_by_share_id(self, client):
        resp = await client.post(
            '/workspaces/ws_1/shares', json={'shareWithUserId': 'bob'}, headers=_as('alice'),
        )
        share_id = resp.json()['id']

        resp = await client.delete(
            f'/workspaces/ws_1/share-records/{share_id}', headers=_as('alice'),
        )
        assert resp.status_code == 204
        resp = await client.delete(
            f'/workspaces/ws_1/share-records/{share_id}', headers=_as('alice'),
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_shared_with_me(self, client):
        await client.post(
            '/workspaces/ws_1/shares', json={'shareWithUserId': 'bob'}, headers=_as('alice'),
        )
        resp = await client.get('/shared-with-me', headers=_as('bob'))
        assert resp.status_code == 200
        [ws] = resp.json()['workspaces']
        assert ws['name'] == 'Roadmap'
        assert ws['ownerUsername'] == 'alice'


# =====================================================================
# Links
# =====================================================================


class TestLinkRoutes:
    @pytest.mark.asyncio
    async def test_create_link_returns_token_once(self, client, world):
        resp = await client.post(
            '/workspaces/ws_1/share-link', json={'requiresLogin': False}, headers=_as('alice'),
        )
        assert resp.status_code == 201
        body = resp.json()
        token = body['token']
        assert body['link'] == f'https://share.example.com/shared/{token}'
        assert body['requiresLogin'] is False

        resp = await client.get('/workspaces/ws_1/share-links', headers=_as('alice'))
        [listed] = resp.json()['links']
        assert 'token' not in listed
        assert token not in resp.text
        assert (await world.link_repo.get(listed['id'])).token_hash == hash_token(token)

    @pytest.mark.asyncio
    async def test_create_link_without_body(self, client):
        resp = await client.post('/workspaces/ws_1/share-link', headers=_as('alice'))
        assert resp.status_code == 201
        assert resp.json()['requiresLogin'] is True
        assert resp.json()['expiresAt'] is None

    @pytest.mark.asyncio
    async def test_create_link_bad_expiry(self, client):
        resp = await client.post(
            '/workspaces/ws_1/share-link', json={'expiresIn': -3}, headers=_as('alice'),
        )
        assert resp.status_code == 400
        assert resp.json()['error'] == 'invalid_expiry'

    @pytest.mark.asyncio
    @pytest.mark.parametrize('expires_in', [True, False, '2', 'soon', [1]])
    async def test_create_link_rejects_non_numeric_expiry(self, client, world, expires_in):
        resp = await client.post(
            '/workspaces/ws_1/share-link', json={'expiresIn': expires_in}, headers=_as('alice'),
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body['error'] == 'validation_error'
        assert any(e['field'].startswith('expiresIn') for e in body['errors'])
        assert await world.link_repo.list_for_workspace('ws_1', include_inactive=True) == []

    @pytest.mark.asyncio
    async def test_create_link_rejects_string_requires_login(self, client):
        resp = await client.post(
            '/workspaces/ws_1/share-link', json={'requiresLogin': 'no'}, headers=_as('alice'),
        )
        assert resp.status_code == 400
        assert resp.json()['error'] == 'validation_error'

    @pytest.mark.asyncio
    async def test_create_link_fractional_hours(self, client):
        resp = await client.post(
            '/workspaces/ws_1/share-link', json={'expiresIn': 1.5}, headers=_as('alice'),
        )
        assert resp.status_code == 201
        assert resp.json()['expiresAt'] is not None

    @pytest.mark.asyncio
    async def test_anonymous_public_link(self, client):
        resp = await client.post(
            '/workspaces/ws_1/share-link', json={'requiresLogin': False}, headers=_as('alice'),
        )
        token = resp.json()['token']

        resp = await client.get(f'/shared/{token}')
        assert resp.status_code == 200
        workspace = resp.json()['workspace']
        assert workspace['isReadOnly'] is True
        assert workspace['shareInfo']['type'] == 'link'
        assert workspace['shareInfo']['owner'] == 'alice'
        assert workspace['shareInfo']['accessCount'] == 1

    @pytest.mark.asyncio
    async def test_login_required_link(self, client):
        resp = await client.post('/workspaces/ws_1/share-link', headers=_as('alice'))
        token = resp.json()['token']

        resp = await client.get(f'/shared/{token}')
        assert resp.status_code == 401
        assert resp.json()['requiresLogin'] is True

        resp = await client.get(f'/shared/{token}', headers=_as('carol'))
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_token_404(self, client):
        resp = await client.get('/shared/' + 'a' * 64)
        assert resp.status_code == 404
        assert resp.json()['error'] == 'share_link_not_found'

    @pytest.mark.asyncio
    async def test_revoke_link(self, client):
        resp = await client.post(
            '/workspaces/ws_1/share-link', json={'requiresLogin': False}, headers=_as('alice'),
        )
        link_id, token = resp.json()['id'], resp.json()['token']

        resp = await client.delete(f'/workspaces/ws_1/share-links/{link_id}', headers=_as('alice'))
        assert resp.status_code == 204
        resp = await client.get(f'/shared/{token}')
        assert resp.status_code == 404

        resp = await client.delete(f'/workspaces/ws_1/share-links/{link_id}', headers=_as('alice'))
        assert resp.status_code == 404

        resp = await client.get(
            '/workspaces/ws_1/share-links?includeInactive=true', headers=_as('alice'),
        )
        assert [l['isActive'] for l in resp.json()['links']] == [False]

    @pytest.mark.asyncio
    async def test_request_base_url_used_without_public_base(self, world):
        app = _make_app(world, public_base_url='')
        async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as c:
            resp = await c.post('/workspaces/ws_1/share-link', headers=_as('alice'))
        assert resp.json()['link'].startswith('http://test/shared/')


# =====================================================================
# Search / activity / auth
# =====================================================================


class TestMiscRoutes:
    @pytest.mark.asyncio
    async def test_search(self, client):
        resp = await client.get('/users/search', params={'q': 'ca'}, headers=_as('alice'))
        assert resp.status_code == 200
        assert resp.json() == {'users': [{'id': 'carol', 'username': 'carol'}]}

    @pytest.mark.asyncio
    async def test_search_short_query(self, client):
        resp = await client.get('/users/search', params={'q': 'c'}, headers=_as('alice'))
        assert resp.status_code == 400
        assert resp.json()['error'] == 'invalid_query'

    @pytest.mark.asyncio
    async def test_search_non_numeric_limit_400(self, client):
        resp = await client.get(
            '/users/search', params={'q': 'ca', 'limit': 'abc'}, headers=_as('alice'),
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body['error'] == 'validation_error'
        assert body['errors'][0]['field'] == 'limit'

    @pytest.mark.asyncio
    async def test_activity(self, client):
        await client.post(
            '/workspaces/ws_1/shares',
            json={'shareWithUserId': 'bob'},
            headers={**_as('alice'), 'User-Agent': 'pytest-agent', 'X-Forwarded-For': '1.2.3.4, 10.0.0.1'},
        )
        resp = await client.get('/workspaces/ws_1/activity', headers=_as('alice'))
        assert resp.status_code == 200
        [record] = resp.json()['activity']
        assert record['action'] == 'share_granted'
        assert record['ipAddress'] == '1.2.3.4'
        assert record['userAgent'] == 'pytest-agent'

    @pytest.mark.asyncio
    async def test_activity_owner_only(self, client):
        resp = await client.get('/workspaces/ws_1/activity', headers=_as('bob'))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        'method,path',
        [
            ('GET', '/users/search?q=bob'),
            ('GET', '/shared-with-me'),
            ('GET', '/workspaces/ws_1'),
            ('GET', '/workspaces/ws_1/shares'),
            ('POST', '/workspaces/ws_1/share-link'),
        ],
    )
    async def test_anonymous_401(self, client, method, path):
        resp = await client.request(method, path)
        assert resp.status_code == 401
        assert resp.json()['detail']['error'] == 'unauthenticated'

    @pytest.mark.asyncio
    async def test_store_failure_masked_500(self, client, world, monkeypatch):
        async def broken(user_id, now):
            raise StoreError(status_code=503, message='secret connection string')

        monkeypatch.setattr(world.share_repo, 'list_active_for_recipient', broken)
        resp = await client.get('/shared-with-me', headers=_as('bob'))
        assert resp.status_code == 500
        assert resp.json()['error'] == 'internal_error'
        assert 'secret connection string' not in resp.text

    @pytest.mark.asyncio
    async def test_resolution_timeout_fails_closed(self, make_world):
        world = make_world(timeout=0.01)

        async def slow(workspace_id):
            await asyncio.sleep(1)

        world.content.get_owner_user_id = slow
        async with AsyncClient(
            transport=ASGITransport(app=_make_app(world)), base_url='http://test',
        ) as c:
            resp = await c.get('/workspaces/ws_1', headers=_as('alice'))
        assert resp.status_code == 500
        assert resp.json()['detail']['error'] == 'store_timeout'
