"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from agentpad.editor.content_cache import CacheConfig, ContentCache
from agentpad.editor.document_service import DocumentService
from agentpad.events import EventBus
from agentpad.services.settings import ProviderProfile, SecretVault
from tests.helpers import NO_WAIT_RETRY, MemoryWorkspace


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def memory_workspace() -> MemoryWorkspace:
    return MemoryWorkspace({"notes.md": "# Notes\nhello world\n", "docs/guide.md": "Guide"})


@pytest.fixture
def document_service(memory_workspace: MemoryWorkspace, event_bus: EventBus) -> DocumentService:
    return DocumentService(
        memory_workspace,
        event_bus=event_bus,
        cache=ContentCache(CacheConfig(max_entries=8)),
        retry=NO_WAIT_RETRY,
    )


@pytest_asyncio.fixture
async def loaded_document(document_service: DocumentService):
    await document_service.open("notes.md")
    yield document_service
    await document_service.aclose()


@pytest.fixture
def vault(tmp_path: Path) -> SecretVault:
    return SecretVault(key_path=tmp_path / "settings.key")


@pytest.fixture
def provider(vault: SecretVault) -> ProviderProfile:
    return ProviderProfile(
        id="local",
        name="Local",
        base_url="http://llm.test/v1",
        api_key=vault.encrypt("sk-test"),
        models=["test-model"],
    )
