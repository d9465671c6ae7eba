from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ..core.config import Settings, get_settings
from ..core.log import configure_logging
from ..domain.catalog import ModelCatalog
from ..domain.jobs import JobOrchestrator, ResolverFactory
from ..domain.models import Session
from ..domain.resolver import LocalResolver, RemoteResolver, TieredResolver
from ..domain.users import UserStore
from ..integrations.civitai import CivitAIResolver
from ..integrations.downloads import DownloadScheduler
from .catalog import router as catalog_router
from .health import router as health_router
from .prompts import router as prompts_router
from .users import router as users_router


def build_resolver_factory(
    settings: Settings,
    catalog: ModelCatalog,
    remote: Optional[RemoteResolver] = None,
    downloads: Optional[DownloadScheduler] = None,
) -> ResolverFactory:
    """One TieredResolver per job, carrying the submitting user's API key."""

    def factory(session: Session) -> TieredResolver:
        return TieredResolver(
            local=LocalResolver(catalog),
            remote=remote,
            registry=CivitAIResolver.from_settings(
                settings, session.civitai_api_key, downloads=downloads
            ),
        )

    return factory


def create_app(
    settings: Optional[Settings] = None,
    catalog: Optional[ModelCatalog] = None,
    orchestrator: Optional[JobOrchestrator] = None,
    users: Optional[UserStore] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    if catalog is None:
        catalog = ModelCatalog.from_index_file(settings.CATALOG_INDEX)
    if orchestrator is None:
        orchestrator = JobOrchestrator(
            build_resolver_factory(settings, catalog),
            max_workers=settings.MAX_CONCURRENT_JOBS,
        )

    app = FastAPI(title=settings.APP_NAME, version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # the host application sits in front of this service
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.catalog = catalog
    app.state.orchestrator = orchestrator
    app.state.users = users or UserStore()

    @app.on_event("shutdown")
    def shutdown_event():
        logger.info("Stopping import job workers")
        app.state.orchestrator.shutdown(wait=False)

    app.include_router(health_router, tags=["system"])
    app.include_router(prompts_router, tags=["prompts"])
    app.include_router(users_router, tags=["users"])
    app.include_router(catalog_router, tags=["models"])

    return app


def serve() -> None:
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    serve()
