# tests/conftest.py
"""Shared test fixtures.

Every fixture runs against one in-memory SQLite database and one
MockClock, so time-dependent behavior (TTL expiry, lock retry pauses,
rate-limit waits) is deterministic and never sleeps.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import logging
import os
from collections.abc import Iterator

import pytest
from hypothesis import Phase, Verbosity, settings

from chunksync.core.chunks import ChunkStore
from chunksync.core.clock import MockClock
from chunksync.core.database import ChunkSyncDB
from chunksync.core.state import SharedStateStore
from chunksync.engine.registry import HandlerRegistry
from chunksync.engine.runtime import InMemoryJobRuntime

# =============================================================================
# Hypothesis Profiles
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Core Fixtures
# =============================================================================


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def db() -> Iterator[ChunkSyncDB]:
    database = ChunkSyncDB.in_memory()
    yield database
    database.close()


@pytest.fixture
def store(db: ChunkSyncDB, clock: MockClock) -> ChunkStore:
    return ChunkStore(db, clock)


@pytest.fixture
def state(db: ChunkSyncDB, clock: MockClock) -> SharedStateStore:
    return SharedStateStore(db, clock)


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def runtime(registry: HandlerRegistry, clock: MockClock) -> InMemoryJobRuntime:
    return InMemoryJobRuntime(registry, clock)


@pytest.fixture(autouse=True)
def _restore_root_handlers() -> Iterator[None]:
    """configure_logging replaces root handlers; put the originals back."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
