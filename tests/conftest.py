"""
Shared pytest fixtures for tagstack tests.

This file is automatically loaded by pytest. Fixtures defined here are
available to all test files without explicit imports.
"""

import json as _json
import os as _os
import pathlib as _pathlib
import typing as _typing
import unittest.mock as _mock

import httpx as _httpx
import pytest as _pytest

import tagstack.config as config
import tagstack.fetcher as fetcher
import tagstack.storage as storage
import tagstack.tags as tags

# Environment keys that should be cleared for isolated tests
ENV_KEYS_TO_CLEAR_PREFIX = "TAGSTACK_"

BASE_URL = "https://cfg.example.com/conf"


@_pytest.fixture
def clean_env() -> dict[str, str]:
    """
    Return environment dict with TAGSTACK_* keys removed.

    Use with mock.patch.dict to isolate tests from the actual environment.
    """
    return {k: v for k, v in _os.environ.items() if not k.startswith(ENV_KEYS_TO_CLEAR_PREFIX)}


@_pytest.fixture
def isolated_env(clean_env: dict[str, str]):
    """
    Context manager that isolates tests from environment variables.

    Usage:
        def test_something(isolated_env):
            with isolated_env:
                settings = config.Settings.construct_without_dotenv()
    """
    return _mock.patch.dict(_os.environ, clean_env, clear=True)


@_pytest.fixture
def clean_settings(
    isolated_env,
    tmp_path: _pathlib.Path,
    monkeypatch: _pytest.MonkeyPatch,
) -> config.Settings:
    """
    Settings instance isolated from environment, .env file, and user config.

    The working directory is an empty temp dir, so no project config applies.
    """
    monkeypatch.chdir(tmp_path)
    with isolated_env:
        _os.environ["TAGSTACK_CONFIG_DIR"] = str(tmp_path / "user-config")
        return config.Settings.construct_without_dotenv()


# =============================================================================
# Remote document server
# =============================================================================


class DocumentServer:
    """
    In-memory stand-in for the remote document layout.

    Serves ``documents`` (path relative to the base path -> JSON payload)
    through an ``httpx.MockTransport`` and records every requested path.
    """

    def __init__(self, documents: dict[str, _typing.Any] | None = None) -> None:
        self.documents: dict[str, _typing.Any] = dict(documents or {})
        self.raw: dict[str, tuple[int, str, str]] = {}
        self.requests: list[str] = []
        self.transport = _httpx.MockTransport(self._handle)

    def _handle(self, request: _httpx.Request) -> _httpx.Response:
        path = request.url.path
        prefix = _httpx.URL(BASE_URL).path.rstrip("/") + "/"
        relative = path[len(prefix) :] if path.startswith(prefix) else path.lstrip("/")
        self.requests.append(relative)

        if relative in self.raw:
            status, content_type, body = self.raw[relative]
            return _httpx.Response(status, headers={"content-type": content_type}, text=body)
        if relative not in self.documents:
            return _httpx.Response(404, headers={"content-type": "text/html"}, text="not found")
        return _httpx.Response(
            200,
            headers={"content-type": "application/json"},
            content=_json.dumps(self.documents[relative]).encode("utf-8"),
        )

    def count(self, relative: str) -> int:
        return self.requests.count(relative)


@_pytest.fixture
def server() -> DocumentServer:
    """Empty document server; tests add documents as needed."""
    return DocumentServer()


@_pytest.fixture
def memory_store() -> storage.MemoryStore:
    return storage.MemoryStore()


@_pytest.fixture
def scoped_storage(memory_store: storage.MemoryStore) -> storage.ScopedStorage:
    return storage.ScopedStorage(memory_store)


@_pytest.fixture
def resolver(memory_store: storage.MemoryStore) -> tags.TagResolver:
    return tags.TagResolver(memory_store, tags.Location("https://app.example.com/"))


@_pytest.fixture
def make_client(
    server: DocumentServer,
    resolver: tags.TagResolver,
    scoped_storage: storage.ScopedStorage,
) -> _typing.Callable[..., fetcher.ConfigClient]:
    """Factory for clients wired to the document server."""

    def factory(**kwargs: _typing.Any) -> fetcher.ConfigClient:
        transport = fetcher.DocumentTransport(BASE_URL, transport=server.transport)
        return fetcher.ConfigClient(transport, resolver, scoped_storage, **kwargs)

    return factory


@_pytest.fixture
def client(make_client: _typing.Callable[..., fetcher.ConfigClient]) -> fetcher.ConfigClient:
    return make_client()


def chain_documents() -> dict[str, _typing.Any]:
    """A root -> mid -> leaf chain used across tests."""
    return {
        "default.json": {
            "updated": "2024-01-01",
            "domains": {"app.example.com": {"tag": "leaf"}},
            "defaultTag": "root",
        },
        "root/conf.json": {"updated": "r1", "title": "Root", "theme": {"color": "red", "font": "serif"}},
        "root/events.json": {
            "updated": "re1",
            "events": [
                {"id": "e1", "title": "A", "color": "red"},
                {"id": "e2", "title": "Standup"},
            ],
        },
        "root/tips.json": {"tips": [{"id": "t1", "title": "Tip", "content": "Be kind"}]},
        "mid/conf.json": {"parent": "root", "theme": {"color": "blue"}},
        "mid/events.json": [{"id": "e1", "title": "B"}],
        "leaf/conf.json": {"updated": "l1", "parent": "mid", "title": "Leaf"},
        "leaf/events.json": {"events": [{"id": "e3", "title": "Leaf only"}, {"id": "e2", "deleted": True}]},
    }


@_pytest.fixture
def chain_server(server: DocumentServer) -> DocumentServer:
    """Document server preloaded with the root -> mid -> leaf chain."""
    server.documents.update(chain_documents())
    return server
