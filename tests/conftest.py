"""
Shared fixtures: settings, provider descriptors, a loaded ConfigHandle and a
fake upstream (providers + registrar) served through httpx.MockTransport.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from oauth_gateway.core.oauth.config import DriveDescriptor, IdentityDescriptor, build_snapshot
from oauth_gateway.core.oauth.providers import DriveProvider, IdentityProvider
from oauth_gateway.core.oauth.registry import ConfigHandle
from oauth_gateway.core.settings import Settings
from oauth_gateway.services.drive_service import DriveFlow
from oauth_gateway.services.exchange_service import TokenExchanger
from oauth_gateway.services.login_service import LoginFlow
from oauth_gateway.services.registrar_service import RegistrarClient
from oauth_gateway.services.session_service import MemorySessionStore, SessionBroker

PROJECT_ID = "11111111-1111-1111-1111-111111111111"
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
REGISTER_URL = "https://registrar.example.com/v1/register"
DRIVE_TOKEN_URL = "https://registrar.example.com/v1/drive-token"


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = dict(
        environment="testing",
        app_endpoint="https://app.example.com/",
        authorized_endpoint="https://gw.example.com/auth/authorized",
        authorized_drive_endpoint="https://gw.example.com/drive/authorized",
        register_endpoint=REGISTER_URL,
        drive_token_endpoint=DRIVE_TOKEN_URL,
        filesystem_endpoint="https://app.example.com/drive",
        redis_url=None,
        allow_reload=True,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def identity_descriptor(provider: str, **overrides: Any) -> IdentityDescriptor:
    values: Dict[str, Any] = dict(
        auth_url=f"https://{provider.lower()}.example.com/authorize",
        token_url=f"https://{provider.lower()}.example.com/token",
        client_id="abc",
        client_secret="s3cr3t",
        identity_resource_url=f"https://{provider.lower()}.example.com/me",
        scope="email profile",
    )
    if provider == "google":
        values["auth_url"] = GOOGLE_AUTHORIZE_URL
    values.update(overrides)
    return IdentityDescriptor(**values)


def drive_descriptor(provider: str, **overrides: Any) -> DriveDescriptor:
    files_request: Dict[str, Any] = {
        "method": "GET",
        "base_url": f"https://{provider}-api.example.com",
        "endpoint": "/files",
        "list_query": "?fields=all",
    }
    if provider == "dropbox":
        files_request = {
            "method": "POST",
            "base_url": "https://dropbox-api.example.com",
            "endpoint": "/2/files/list_folder",
            "json_body_template": '{"path": ""}',
        }
    values: Dict[str, Any] = dict(
        auth_url=f"https://{provider}.example.com/authorize",
        token_url=f"https://{provider}.example.com/token",
        client_id="drive-abc",
        client_secret="drive-s3cr3t",
        scopes=["files.read"],
        files_request=files_request,
    )
    values.update(overrides)
    return DriveDescriptor(**values)


def all_identity() -> Dict[IdentityProvider, IdentityDescriptor]:
    return {p: identity_descriptor(p.value) for p in IdentityProvider}


def all_drive() -> Dict[DriveProvider, DriveDescriptor]:
    return {p: drive_descriptor(p.value) for p in DriveProvider}


def make_handle(
    settings: Optional[Settings] = None,
    identity: Optional[Dict[IdentityProvider, IdentityDescriptor]] = None,
    drive: Optional[Dict[DriveProvider, DriveDescriptor]] = None,
) -> ConfigHandle:
    options = settings or make_settings()
    identity = all_identity() if identity is None else identity
    drive = all_drive() if drive is None else drive
    handle = ConfigHandle(lambda version: build_snapshot(options, version, identity, drive))
    handle.load()
    return handle


Handler = Callable[[httpx.Request], httpx.Response]


class FakeUpstream:
    """Routes requests by (method, scheme://host/path) and records every request."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, response: Optional[httpx.Response] = None, handler: Optional[Handler] = None):
        if handler is None:
            fixed = response if response is not None else httpx.Response(200, json={})

            def handler(request: httpx.Request) -> httpx.Response:
                return fixed

        self.routes[(method.upper(), url)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"error": "not_found"})
        return handler(request)

    def calls(self, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if f"{r.url.scheme}://{r.url.host}{r.url.path}" == url]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), timeout=5.0)


def token_json(**overrides: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "access_token": "at-123",
        "token_type": "Bearer",
        "expires_in": 3599,
        "refresh_token": "rt-456",
        "scope": "files.read",
    }
    body.update(overrides)
    return body


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def handle(settings: Settings) -> ConfigHandle:
    return make_handle(settings)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def broker(store: MemorySessionStore) -> SessionBroker:
    return SessionBroker(store)


@pytest.fixture
def exchanger(upstream: FakeUpstream) -> TokenExchanger:
    return TokenExchanger(upstream.client(), user_agent="OAuth Gateway Tests")


@pytest.fixture
def registrar(upstream: FakeUpstream) -> RegistrarClient:
    return RegistrarClient(upstream.client(), user_agent="OAuth Gateway Tests")


@pytest.fixture
def login_flow(broker: SessionBroker, exchanger: TokenExchanger, registrar: RegistrarClient) -> LoginFlow:
    return LoginFlow(broker, exchanger, registrar)


@pytest.fixture
def drive_flow(broker: SessionBroker, exchanger: TokenExchanger, registrar: RegistrarClient) -> DriveFlow:
    return DriveFlow(broker, exchanger, registrar)
