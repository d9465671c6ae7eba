"""Shared fixtures for the import pipeline tests."""

import pytest

from promptimport.core.config import Settings
from promptimport.domain.catalog import ModelCatalog
from promptimport.domain.jobs import JobOrchestrator
from promptimport.domain.resolver import LocalResolver, TieredResolver

from tests.helpers import CATALOG_INDEX, InlineExecutor


@pytest.fixture(scope="session")
def log_dir(tmp_path_factory):
    return tmp_path_factory.mktemp("logs")


@pytest.fixture
def settings(tmp_path, log_dir):
    return Settings(
        LOG_DIR=str(log_dir),
        CATALOG_INDEX=str(tmp_path / "catalog.json"),
        STREAM_POLL_INTERVAL_S=0.01,
    )


@pytest.fixture
def catalog():
    return ModelCatalog.from_dict(CATALOG_INDEX)


@pytest.fixture
def inline_executor():
    return InlineExecutor()


@pytest.fixture
def local_only_orchestrator(catalog, inline_executor):
    return JobOrchestrator(
        lambda session: TieredResolver(local=LocalResolver(catalog)),
        executor=inline_executor,
    )


@pytest.fixture
def app(settings, catalog, local_only_orchestrator):
    from promptimport.api.main import create_app

    return create_app(settings=settings, catalog=catalog, orchestrator=local_only_orchestrator)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)
