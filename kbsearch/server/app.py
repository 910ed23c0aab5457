from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kbsearch import __version__
from kbsearch.config import get_config
from kbsearch.logging import configure_logging
from kbsearch.server.routers.search import router as search_router
from kbsearch.server.runtime import Runtime


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    runtime: Runtime | None = getattr(app.state, "runtime", None)
    if runtime is None:
        config = get_config()
        configure_logging(config.log_level, config.log_format)
        runtime = Runtime(config)
        app.state.runtime = runtime
    await runtime.connect()
    yield
    await runtime.close()


def create_app(runtime: Runtime | None = None) -> FastAPI:
    app = FastAPI(
        title="kbsearch",
        description="Hybrid lexical + semantic knowledge-base search - API server",
        version=__version__,
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(search_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
