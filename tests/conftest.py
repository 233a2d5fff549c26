"""Shared fixtures: fake providers, a temp cache dir, a started service."""

import pytest

from docseek.indexer.embedder import Embedder
from docseek.service import DocumentIndexService
from docseek.storage.cache import CacheManager
from tests.helpers import make_provider, sample_documents


@pytest.fixture
def provider():
    return make_provider()


@pytest.fixture
def embedder(provider):
    return Embedder(provider, batch_size=20, retry_delay=0)


@pytest.fixture
def cache(tmp_path):
    return CacheManager(tmp_path / "cache")


@pytest.fixture
def service(embedder, cache):
    """Started service over the two sample documents."""
    svc = DocumentIndexService(
        embedder=embedder,
        cache=cache,
        corpus_id="acme/handbook",
        failure_policy="placeholder",
    )
    svc.start(sample_documents())
    yield svc
    svc.shutdown()
