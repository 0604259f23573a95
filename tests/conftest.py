"""
Shared fixtures for the Movie Review Client tests.

Provides an in-process fake backend built with aiohttp.web, a scripted
transport for deterministic coordinator tests, and credential stores.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import patch

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from keyring.errors import PasswordDeleteError

from reelclient.api_client import ReelAPIClient
from reelclient.auth.refresh_coordinator import RefreshCoordinator
from reelclient.auth.token_storage import InMemoryTokenStorage
from reelshared.exceptions import APIResponseError
from reelshared.interfaces import IRequestTransport
from reelshared.models import CredentialPair, RequestDescriptor


USER = {
    'id': 7,
    'username': 'alice',
    'email': 'alice@example.com',
    'first_name': 'Alice',
    'last_name': 'Liddell',
    'profile_picture': None
}

MOVIE = {
    'id': 1,
    'title': 'Arrival',
    'description': 'Linguist meets heptapods.',
    'genres': [{'id': 3, 'value': 'scifi', 'label': 'Science Fiction'}],
    'release_date': '2016-11-11',
    'duration': 116,
    'poster': None,
    'director': 'Denis Villeneuve',
    'cast': 'Amy Adams',
    'created_by': 7,
    'reviews': [],
    'average_rating': 4.5,
    'user_review': None
}


class FakeBackend:
    """
    Token-protected REST backend.

    Protected routes accept ``Bearer <token>`` only for tokens in
    ``valid_access``. The refresh endpoint exchanges refresh tokens found in
    ``refresh_tokens`` and can be held back until a number of unauthorized
    responses have been sent, so concurrent failures overlap the refresh.
    """

    def __init__(self):
        self.valid_access = {'new'}
        self.refresh_tokens = {'r1': 'new'}
        self.refresh_status: Optional[int] = None
        self.refresh_calls: List[Dict[str, Any]] = []
        self.requests: List[Tuple[str, str, Optional[str]]] = []
        self.logout_calls: List[Dict[str, Any]] = []
        self.profile_updates: List[Dict[str, Any]] = []
        self.hold_refresh_until = 0
        self.unauthorized_sent = 0
        self._unauthorized_event = asyncio.Event()
        self.base_url = ''

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post('/api/auth/token/refresh/', self.refresh)
        app.router.add_post('/api/auth/login/', self.login)
        app.router.add_post('/api/auth/register/', self.register)
        app.router.add_post('/api/auth/logout/', self.logout)
        app.router.add_get('/api/auth/user/', self.protected(self.user))
        app.router.add_patch('/api/auth/profile/', self.protected(self.update_profile))
        app.router.add_get('/api/items/{name}/', self.protected(self.item))
        app.router.add_post('/api/items/{name}/', self.protected(self.item))
        app.router.add_get('/api/movies/', self.protected(self.movie_list))
        app.router.add_post('/api/movies/', self.protected(self.movie_create))
        app.router.add_get('/api/movies/{id}/', self.protected(self.movie_detail))
        app.router.add_delete('/api/movies/{id}/', self.protected(self.movie_delete))
        app.router.add_post('/api/movies/{id}/reviews/', self.protected(self.review_create))
        app.router.add_get('/api/garbled/{status}/', self.garbled)
        return app

    @property
    def requests_by_auth(self) -> Dict[Optional[str], int]:
        counts: Dict[Optional[str], int] = {}
        for _, _, auth in self.requests:
            counts[auth] = counts.get(auth, 0) + 1
        return counts

    def protected(self, handler: Callable):
        async def wrapper(request: web.Request) -> web.Response:
            auth = request.headers.get('Authorization')
            self.requests.append((request.method, request.path, auth))
            token = auth[len('Bearer '):] if auth and auth.startswith('Bearer ') else None
            if token not in self.valid_access:
                self.unauthorized_sent += 1
                if self.unauthorized_sent >= self.hold_refresh_until:
                    self._unauthorized_event.set()
                return web.json_response({'detail': 'Given token not valid'}, status=401)
            return await handler(request)
        return wrapper

    async def refresh(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.refresh_calls.append({'body': body, 'auth': request.headers.get('Authorization')})

        if self.hold_refresh_until:
            await asyncio.wait_for(self._unauthorized_event.wait(), timeout=5)
            # Let the client finish reading the other 401 responses
            await asyncio.sleep(0.1)

        if self.refresh_status is not None:
            return web.json_response({'detail': 'Token is invalid or expired'}, status=self.refresh_status)

        access = self.refresh_tokens.get(body.get('refresh'))
        if access is None:
            return web.json_response({'detail': 'Token is invalid or expired'}, status=401)
        return web.json_response({'access': access})

    async def login(self, request: web.Request) -> web.Response:
        body = await request.json()
        if body.get('password') != 'secret':
            return web.json_response({'detail': 'No active account found'}, status=401)
        return web.json_response({'access': 'new', 'refresh': 'r1', 'user': USER})

    async def register(self, request: web.Request) -> web.Response:
        body = await request.json()
        user = dict(USER, username=body['username'], email=body['email'])
        return web.json_response({'user': user, 'tokens': {'access': 'new', 'refresh': 'r1'}}, status=201)

    async def logout(self, request: web.Request) -> web.Response:
        self.logout_calls.append(await request.json())
        return web.Response(status=205)

    async def user(self, request: web.Request) -> web.Response:
        return web.json_response(USER)

    async def update_profile(self, request: web.Request) -> web.Response:
        form = await request.post()
        picture = form.get('profile_picture')
        update = {key: value for key, value in form.items() if key != 'profile_picture'}
        self.profile_updates.append({
            'fields': update,
            'content_type': request.content_type,
            'picture': picture.filename if picture is not None else None
        })
        user = dict(USER, **update)
        if picture is not None:
            user['profile_picture'] = f'/media/{picture.filename}'
        return web.json_response(user)

    async def item(self, request: web.Request) -> web.Response:
        return web.json_response({
            'item': request.match_info['name'],
            'auth': request.headers.get('Authorization')
        })

    async def movie_list(self, request: web.Request) -> web.Response:
        page = int(request.query.get('page', 1))
        return web.json_response({
            'count': 1,
            'next': None,
            'previous': None if page == 1 else f'{self.base_url}movies/?page={page - 1}',
            'results': [MOVIE]
        })

    async def movie_create(self, request: web.Request) -> web.Response:
        if request.content_type.startswith('multipart/'):
            form = await request.post()
            fields = {key: value for key, value in form.items() if key != 'poster'}
            movie = dict(MOVIE, id=2, title=fields['title'], poster=f"/media/{form['poster'].filename}")
        else:
            body = await request.json()
            movie = dict(MOVIE, id=2, title=body['title'])
        return web.json_response(movie, status=201)

    async def movie_detail(self, request: web.Request) -> web.Response:
        movie_id = int(request.match_info['id'])
        if movie_id != MOVIE['id']:
            return web.json_response({'detail': 'Not found.'}, status=404)
        return web.json_response(MOVIE)

    async def movie_delete(self, request: web.Request) -> web.Response:
        return web.Response(status=204)

    async def garbled(self, request: web.Request) -> web.Response:
        status = int(request.match_info['status'])
        self.requests.append((request.method, request.path, request.headers.get('Authorization')))
        return web.Response(body=b'\xff\xfe bad', status=status, content_type='text/plain', charset='utf-8')

    async def review_create(self, request: web.Request) -> web.Response:
        body = await request.json()
        return web.json_response({
            'id': 11,
            'user': USER['id'],
            'rating': body['rating'],
            'comment': body.get('comment'),
            'created_at': '2024-01-01T00:00:00Z',
            'user_name': USER['username']
        }, status=201)


@pytest_asyncio.fixture
async def backend():
    """Running fake backend; ``backend.base_url`` points at its API root."""
    fake = FakeBackend()
    server = TestServer(fake.make_app())
    await server.start_server()
    fake.base_url = str(server.make_url('/api/'))
    yield fake
    await server.close()


@pytest.fixture
def token_storage():
    """Credential store holding an expired access token and a valid refresh token."""
    return InMemoryTokenStorage(CredentialPair(access='old', refresh='r1'))


@pytest_asyncio.fixture
async def api_client(backend, token_storage):
    """API client wired to the fake backend with the refresh coordinator attached."""
    client = ReelAPIClient(backend.base_url, timeout=5.0)
    coordinator = RefreshCoordinator(client, token_storage, refresh_timeout=5.0)
    client.set_refresh_coordinator(coordinator)
    client.set_credential('old')
    yield client
    await client.close()


@pytest.fixture
def fake_keyring():
    """Patch the keyring module used by the storage with a dict-backed fake."""
    values = {}

    def set_password(service, key, value):
        values[(service, key)] = value

    def get_password(service, key):
        return values.get((service, key))

    def delete_password(service, key):
        if (service, key) not in values:
            raise PasswordDeleteError("not found")
        del values[(service, key)]

    with patch('reelclient.auth.token_storage.keyring') as mock_keyring:
        mock_keyring.set_password.side_effect = set_password
        mock_keyring.get_password.side_effect = get_password
        mock_keyring.delete_password.side_effect = delete_password
        mock_keyring.values = values
        yield mock_keyring


class ScriptedTransport(IRequestTransport):
    """
    In-memory transport whose responses come from a handler coroutine.

    Records the Authorization header of every request so tests can assert
    which credential each attempt carried.
    """

    def __init__(self, handler: Callable):
        self.handler = handler
        self._headers: Dict[str, str] = {'Content-Type': 'application/json'}
        self.sent: List[Tuple[str, str, Optional[str]]] = []

    @property
    def default_headers(self) -> Dict[str, str]:
        return dict(self._headers)

    def set_credential(self, access: str) -> None:
        self._headers['Authorization'] = f'Bearer {access}'

    def clear_credential(self) -> None:
        self._headers.pop('Authorization', None)

    async def send(self, descriptor: RequestDescriptor, timeout: Optional[float] = None) -> Any:
        headers = dict(self._headers)
        if not descriptor.authenticated:
            headers.pop('Authorization', None)
        headers.update(descriptor.headers)
        descriptor.sent_authorization = headers.get('Authorization')
        self.sent.append((descriptor.method, descriptor.path, headers.get('Authorization')))
        return await self.handler(descriptor, headers)

    def sent_to(self, path: str) -> List[Tuple[str, str, Optional[str]]]:
        return [entry for entry in self.sent if entry[1] == path]


def unauthorized(path: str = 'items/a/') -> APIResponseError:
    return APIResponseError(status=401, body={'detail': 'Given token not valid'}, method='GET', url=path)


async def wait_for(condition: Callable[[], bool], iterations: int = 100) -> None:
    """Yield to the event loop until ``condition`` holds."""
    for _ in range(iterations):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("Condition not reached")
