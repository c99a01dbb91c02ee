"""
Tests for the provider registry, authorize URLs and generation swapping.
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from oauth_gateway.common.exceptions import ConfigError
from oauth_gateway.core.oauth.config import build_snapshot
from oauth_gateway.core.oauth.providers import DriveProvider, IdentityProvider
from oauth_gateway.core.oauth.registry import ConfigHandle, ProviderRegistry, redirect_uri_for

from tests.conftest import (
    PROJECT_ID,
    all_drive,
    all_identity,
    drive_descriptor,
    identity_descriptor,
    make_handle,
    make_settings,
)


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


class TestRedirectUri:
    def test_base_plus_provider(self):
        assert redirect_uri_for("https://gw.example.com/auth/authorized", "google") == (
            "https://gw.example.com/auth/authorized/google"
        )

    def test_trailing_slash_is_not_doubled(self):
        assert redirect_uri_for("https://gw.example.com/drive/authorized/", "dropbox") == (
            "https://gw.example.com/drive/authorized/dropbox"
        )

    def test_registry_entries_carry_redirect_uri(self, handle):
        registry = handle.current().registry

        assert registry.lookup_identity(IdentityProvider.LINKEDIN).redirect_uri == (
            "https://gw.example.com/auth/authorized/linkedIn"
        )
        assert registry.lookup_drive(DriveProvider.MSGRAPH).redirect_uri == (
            "https://gw.example.com/drive/authorized/msgraph"
        )


class TestAuthorizeUrl:
    def test_google_login(self, handle):
        client = handle.current().registry.lookup_identity(IdentityProvider.GOOGLE)

        url = client.authorize_url("csrf-1", "challenge-1")

        parts = urlsplit(url)
        assert parts.netloc == "accounts.google.com"
        query = _query(url)
        assert query["response_type"] == "code"
        assert query["client_id"] == "abc"
        assert query["state"] == "csrf-1"
        assert query["code_challenge"] == "challenge-1"
        assert query["code_challenge_method"] == "S256"
        assert query["scope"] == "email profile"
        assert query["redirect_uri"] == "https://gw.example.com/auth/authorized/google"
        assert query["access_type"] == "offline"
        assert query["prompt"] == "consent"

    def test_github_has_no_extra_params(self, handle):
        client = handle.current().registry.lookup_identity(IdentityProvider.GITHUB)

        query = _query(client.authorize_url("s", "c"))

        assert "access_type" not in query
        assert "prompt" not in query

    def test_dropbox_drive(self, handle):
        client = handle.current().registry.lookup_drive(DriveProvider.DROPBOX)

        query = _query(client.authorize_url(PROJECT_ID, "c"))

        assert query["token_access_type"] == "offline"
        assert query["state"] == PROJECT_ID
        assert query["scope"] == "files.read"

    def test_no_scope_parameter_when_none_configured(self):
        identity = {IdentityProvider.DISCORD: identity_descriptor("discord", scope="")}
        handle = make_handle(identity=identity, drive={})

        query = _query(handle.current().registry.lookup_identity(IdentityProvider.DISCORD).authorize_url("s", "c"))

        assert "scope" not in query

    def test_existing_query_string_is_extended(self):
        identity = {
            IdentityProvider.AZURE: identity_descriptor(
                "azure", auth_url="https://login.example.com/authorize?domain_hint=example.com"
            )
        }
        handle = make_handle(identity=identity, drive={})

        url = handle.current().registry.lookup_identity(IdentityProvider.AZURE).authorize_url("s", "c")

        assert url.count("?") == 1
        assert _query(url)["domain_hint"] == "example.com"


class TestProviderRegistry:
    def test_lookup_unconfigured_provider(self):
        handle = make_handle(identity={IdentityProvider.GOOGLE: identity_descriptor("google")}, drive={})
        registry = handle.current().registry

        assert registry.lookup_identity(IdentityProvider.GITHUB) is None
        assert registry.lookup_drive(DriveProvider.GOOGLE) is None
        assert registry.identity_providers() == (IdentityProvider.GOOGLE,)
        assert registry.drive_providers() == ()

    def test_invalid_endpoint_url(self):
        identity = {IdentityProvider.GOOGLE: identity_descriptor("google", token_url="oauth2.googleapis.com/token")}
        snapshot = build_snapshot(make_settings(), 1, identity, {})

        with pytest.raises(ConfigError):
            ProviderRegistry.build(snapshot)

    def test_invalid_files_url(self):
        drive = {
            DriveProvider.GOOGLE: drive_descriptor(
                "google", files_request={"base_url": "www.googleapis.com", "endpoint": "/drive/v3/files"}
            )
        }
        snapshot = build_snapshot(make_settings(), 1, {}, drive)

        with pytest.raises(ConfigError):
            ProviderRegistry.build(snapshot)

    def test_client_entry_repr_hides_secret(self, handle):
        client = handle.current().registry.lookup_identity(IdentityProvider.GOOGLE)

        assert "s3cr3t" not in repr(client)


class TestConfigHandle:
    def test_current_before_load(self):
        handle = ConfigHandle(lambda version: build_snapshot(make_settings(), version, {}, {}))

        assert not handle.loaded
        with pytest.raises(ConfigError):
            handle.current()

    def test_reload_publishes_new_generation(self):
        options = [make_settings(), make_settings(app_endpoint="https://new-app.example.com/")]

        def loader(version):
            return build_snapshot(options[version - 1], version, all_identity(), all_drive())

        handle = ConfigHandle(loader)
        first = handle.load()
        second = handle.reload()

        assert (first.version, second.version) == (1, 2)
        assert handle.current() is second
        assert second.settings.options.app_endpoint == "https://new-app.example.com/"
        # Holders of the old generation keep a consistent view
        assert first.settings.options.app_endpoint == "https://app.example.com/"

    def test_failed_reload_keeps_previous_generation(self):
        calls = []

        def loader(version):
            calls.append(version)
            if version > 1:
                raise ConfigError(context="broken providers file")
            return build_snapshot(make_settings(), version, all_identity(), all_drive())

        handle = ConfigHandle(loader)
        first = handle.load()

        with pytest.raises(ConfigError):
            handle.reload()

        assert handle.current() is first
        assert calls == [1, 2]

    def test_invalid_registry_rejects_reload(self):
        good = all_identity()
        bad = {IdentityProvider.GOOGLE: identity_descriptor("google", auth_url="nope")}
        sources = [good, bad]

        handle = ConfigHandle(lambda version: build_snapshot(make_settings(), version, sources[version - 1], {}))
        first = handle.load()

        with pytest.raises(ConfigError):
            handle.reload()

        assert handle.current() is first

    def test_reload_rejects_restart_field_change(self):
        options = [make_settings(), make_settings(redis_url="redis://cache:6379/0", log_level="DEBUG")]
        handle = ConfigHandle(
            lambda version: build_snapshot(options[version - 1], version, all_identity(), all_drive())
        )
        first = handle.load()

        with pytest.raises(ConfigError) as exc_info:
            handle.reload()

        assert handle.current() is first
        assert exc_info.value.context.startswith("log_level, redis_url changed")

    def test_custom_restart_fields(self):
        options = [make_settings(), make_settings(port=9000)]
        handle = ConfigHandle(
            lambda version: build_snapshot(options[version - 1], version, all_identity(), all_drive()),
            restart_fields=(),
        )
        handle.load()

        assert handle.reload().settings.options.port == 9000
