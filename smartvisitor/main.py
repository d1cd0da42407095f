# =======================================================================================
# smartvisitor/main.py - FastAPI Application Entry Point
# =======================================================================================
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .config import config
from .api.routes.assignments import router as assignments_router
from .api.routes.dashboard import router as dashboard_router
from .api.routes.projects import router as projects_router
from .api.routes.scan import router as scan_router
from .api.routes.ws import router as ws_router
from .database import DatabaseManager
from .logging_config import setup_logging
from .models.schemas import HealthResponse
from .services.container import Services
from .workers.housekeeping import HousekeepingWorker

log = logging.getLogger("smartvisitor")


def create_app(db: Optional[DatabaseManager] = None, run_workers: bool = True) -> FastAPI:
    services = Services.build(db or DatabaseManager())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        await run_in_threadpool(services.db.create_schema)
        restored = await services.table.load()
        worker = HousekeepingWorker(services)
        if run_workers:
            worker.start()
        log.info("SmartVisitor API started (%d pending request(s) restored)", restored)
        try:
            yield
        finally:
            await worker.stop()
            services.bus.close()
            services.db.dispose()
            log.info("SmartVisitor API stopped")

    app = FastAPI(
        title="SmartVisitor API",
        version=__version__,
        description="RFID tag assignment and real-time notification service",
        debug=config.API_DEBUG,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(scan_router, prefix="/api", tags=["scan"])
    app.include_router(assignments_router, prefix="/api", tags=["assignments"])
    app.include_router(projects_router, prefix="/api", tags=["projects"])
    app.include_router(dashboard_router, prefix="/api", tags=["dashboard"])
    app.include_router(ws_router, tags=["ws"])

    @app.get("/api/health", response_model=HealthResponse, tags=["health"])
    def api_health():
        try:
            services.db.fetch_one("SELECT 1")
            return HealthResponse(status="ok", dataAvailable=True, message=None)
        except SQLAlchemyError as e:
            return HealthResponse(status="error", dataAvailable=False, message=str(e))

    # plain liveness for load balancers
    @app.get("/health")
    def legacy_health():
        return {"status": "ok", "dataAvailable": True}

    return app


def run() -> None:
    import uvicorn

    uvicorn.run("smartvisitor.main:app", host=config.API_HOST, port=config.API_PORT,
                reload=config.API_DEBUG)


app = create_app()
