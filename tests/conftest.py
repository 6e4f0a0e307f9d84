"""Shared fixtures for the clustering test suite."""

import pytest

from skiarea_clustering.config import ClusteringConfig
from skiarea_clustering.repositories.memory import InMemoryObjectStore


@pytest.fixture
def config():
    """Default clustering configuration, independent of the environment."""
    return ClusteringConfig(_env_file=None)


@pytest.fixture
def store():
    """Empty in-memory store with a small page size so paging is exercised."""
    return InMemoryObjectStore(batch_size=2)
