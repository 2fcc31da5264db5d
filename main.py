from fastapi import FastAPI
from contextlib import asynccontextmanager
from app.api.endpoints import router as api_router
from app.db.init_db import init_db
from app.db.session import engine
from app.core.config import settings
from app.core.exceptions import setup_exception_handlers
from app.core.logging import configure_logging, log_requests

configure_logging(settings.LOG_LEVEL)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await engine.dispose()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Directory API for Organizations, Buildings, and Activities",
    version="1.0.0",
    lifespan=lifespan
)

setup_exception_handlers(app)
app.middleware("http")(log_requests)
app.include_router(api_router, prefix="/api/v1")

@app.get("/health")
def health_check():
        return {"status": "ok"}
