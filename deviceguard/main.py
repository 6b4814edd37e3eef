from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deviceguard import __version__
from deviceguard.api import create_api_router
from deviceguard.core.config import get_settings
from deviceguard.core.container import ApplicationContainer
from deviceguard.core.logging_config import configure_logging
from deviceguard.interfaces.http.errors import domain_error_handler
from deviceguard.modules.common.exceptions import DomainError


def create_app(container: Optional[ApplicationContainer] = None) -> FastAPI:
    container = container or ApplicationContainer.build(get_settings())
    settings = container.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        await container.start()
        try:
            yield
        finally:
            await container.shutdown()

    app = FastAPI(
        title=settings.project_name,
        description="Device registry with owner-verified ownership transfers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(DomainError, domain_error_handler)
    app.include_router(create_api_router(settings.api_prefix))

    @app.get("/healthz", include_in_schema=False)
    async def healthz():
        return {"status": "ok", "version": __version__}

    return app


app = create_app()
