"""
Tests for application assembly.
"""

import json

from promptimport.api.main import build_resolver_factory, create_app
from promptimport.domain.catalog import LORA
from promptimport.domain.models import Session
from promptimport.domain.resolver import LocalResolver, NullRemoteResolver
from promptimport.integrations.civitai import CivitAIResolver


class TestResolverFactory:
    def test_tiers_per_session(self, settings, catalog):
        factory = build_resolver_factory(settings, catalog)

        resolver = factory(Session(user_id="alice", civitai_api_key="k1"))

        local, remote, registry = resolver.tiers
        assert isinstance(local, LocalResolver)
        assert isinstance(remote, NullRemoteResolver)
        assert isinstance(registry, CivitAIResolver)
        assert registry.api_key == "k1"

    def test_each_job_gets_its_own_resolver(self, settings, catalog):
        factory = build_resolver_factory(settings, catalog)

        first = factory(Session(user_id="alice", civitai_api_key="k1"))
        second = factory(Session(user_id="bob"))

        assert first is not second
        assert second.tiers[-1].api_key is None


class TestCreateApp:
    def test_catalog_loaded_from_index(self, settings, local_only_orchestrator, tmp_path):
        index = tmp_path / "index.json"
        index.write_text(json.dumps({LORA: [{"name": "x.safetensors", "path": "/l/x"}]}))
        settings.CATALOG_INDEX = str(index)

        app = create_app(settings=settings, orchestrator=local_only_orchestrator)

        assert len(app.state.catalog.handler(LORA)) == 1

    def test_default_orchestrator(self, settings):
        app = create_app(settings=settings)
        try:
            assert app.state.orchestrator.registry is not None
            assert app.state.catalog.categories() == []
        finally:
            app.state.orchestrator.shutdown()
