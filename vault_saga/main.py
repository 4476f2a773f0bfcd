import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .adapters.entry.http.saga_router import router as saga_router
from .workers.saga_supervisor import SagaSupervisor


def _setup_logging():
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(supervisor: Optional[SagaSupervisor] = None) -> FastAPI:
    """
    Build the FastAPI app. The supervisor is started/stopped by the lifespan;
    tests may pass one wired with fakes.
    """
    supervisor = supervisor or SagaSupervisor()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _setup_logging()
        logging.getLogger(__name__).info("Starting vault-saga (lifespan startup)...")
        await supervisor.start()
        app.state.supervisor = supervisor
        try:
            yield
        finally:
            logging.getLogger(__name__).info("Shutting down vault-saga (lifespan shutdown)...")
            await supervisor.stop()

    app = FastAPI(title="vault-saga", version="0.1.0", lifespan=lifespan)
    app.include_router(saga_router)

    @app.get("/healthz")
    async def healthz():
        """
        Liveness probe endpoint.
        """
        return {"status": "ok"}

    return app


app = create_app()
