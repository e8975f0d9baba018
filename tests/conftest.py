"""Shared fixtures for the grounding service tests."""

from pathlib import Path

import pytest
import pytest_asyncio

from config.settings import Settings, reset_settings
from indexer.sqlite_store import SQLiteStore

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_xml() -> Path:
    """Small UniProt dump: six entries, four from supported organisms."""
    return FIXTURES / "uniprot_sample.xml"


@pytest.fixture
def write_xml(tmp_path):
    """Write an XML string to a temporary file and return its path."""
    def _write(content: str, name: str = "doc.xml") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(input_path=tmp_path / "input", batch_size=2)


@pytest.fixture(autouse=True)
def _reset_cached_settings():
    yield
    reset_settings()


@pytest_asyncio.fixture
async def store(tmp_path):
    """Initialized store with an existing index."""
    store = SQLiteStore(tmp_path / "grounding.db")
    await store.initialize()
    await store.ensure_index()
    yield store
    await store.close()
