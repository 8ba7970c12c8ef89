"""In-memory doubles for Cont3xt tests."""

from tests.mocks.db import MemoryDb
from tests.mocks.integrations import FakeIntegration

__all__ = [
    "FakeIntegration",
    "MemoryDb",
]
