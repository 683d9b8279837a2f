import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from conduit.cache import cache
from conduit.config import configure_logging, settings
from conduit.database import init_db
from conduit.middleware import RequestStatsMiddleware
import conduit.models  # noqa: F401  (registers tables on Base.metadata)
from conduit.routers import articles, users

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting Conduit articles API (env=%s)", settings.APP_ENV)
    if settings.CREATE_TABLES:
        await init_db()
    # The API keeps working without Redis; listing reads just always miss.
    await cache.connect()
    yield
    await cache.disconnect()


app = FastAPI(
    title="Conduit Articles API",
    description="Article aggregation and mutation layer of the Conduit backend",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestStatsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(articles.router)
app.include_router(users.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0", "cache": cache.stats}
