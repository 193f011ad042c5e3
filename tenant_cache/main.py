# tenant_cache/main.py

from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from tenant_cache.database import Base, engine
from tenant_cache.models import budget as _budget_model  # noqa: F401  registers the table
from tenant_cache.routers import budgets, cache_admin
from tenant_cache.services.cache_factory import get_cache

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables, connect the cache (or fall back) and start the expiry sweep
    Base.metadata.create_all(bind=engine)
    cache = get_cache()
    await cache.start()
    logger.info("Cache backend: %s", cache.health())
    try:
        yield
    finally:
        # Shutdown: stop the sweep and close Redis
        await cache.stop()

app = FastAPI(lifespan=lifespan)
app.include_router(budgets.router)
app.include_router(cache_admin.router)

@app.get("/health")
def health_check():
    cache_status = {"backend": get_cache().health()}
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ok", "db": "connected", "cache": cache_status}
    except SQLAlchemyError as e:
        return {"status": "error", "db": str(e), "cache": cache_status}
