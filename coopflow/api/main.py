from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coopflow import __version__
from coopflow.api.deps import get_db
from coopflow.api.routers import approvals
from coopflow.common.logger import configure_logging
from coopflow.core.config import get_settings
from coopflow.services.notifications import build_notifier

settings = get_settings()

logger = configure_logging(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.notifier = build_notifier(settings)
    logger.info(f"{settings.app_name} {__version__} starting")
    yield


app = FastAPI(
    title=settings.app_name,
    description="Cooperative withdrawal and loan approval workflow",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

app.include_router(approvals.router, prefix="/api")


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "healthy"
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        database = "unhealthy"
    return {"status": "healthy", "version": __version__, "database": database}
