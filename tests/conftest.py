from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import fnmatch

import pytest

from knowledge.schema import Entity
from knowledge.store import KnowledgeStore


_INTEGRATION_PATTERNS = [
    "*/tests/test_*_integration.py",
]


def _is_integration_path(path: Path) -> bool:
    as_posix = path.as_posix()
    return any(fnmatch.fnmatch(as_posix, pattern) for pattern in _INTEGRATION_PATTERNS)


def pytest_collection_modifyitems(config, items) -> None:
    for item in items:
        if _is_integration_path(Path(str(item.fspath))):
            item.add_marker(
                pytest.mark.integration(
                    reason="End-to-end test against a real SQLite store (opt-in via -m integration)."
                )
            )


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path: Path):
    knowledge_store = KnowledgeStore(tmp_path / "knowledge.sqlite")
    yield knowledge_store
    knowledge_store.close()


@pytest.fixture
def make_entity(fixed_now):
    def _make(name: str, **overrides) -> Entity:
        fields = {
            "entity_type": "metric",
            "category": "liquidity",
            "context": "",
            "confidence": 0.9,
            "tier": 1,
            "extraction_method": "ontology",
            "created_at": fixed_now,
        }
        fields.update(overrides)
        return Entity(name=name, **fields)

    return _make
