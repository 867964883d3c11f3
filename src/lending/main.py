import logging
from fastapi import FastAPI
from lending.config import settings
from lending.core.library import Library
from lending.db import SqlStore
from lending.api.router import router
from lending.seed import seed_demo_data

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)
app.include_router(router)

def build_library() -> Library:
    if settings.DATABASE_URL:
        return Library.from_store(SqlStore.from_url(settings.DATABASE_URL), settings.policy())
    return Library(policy=settings.policy())

@app.on_event("startup")
async def on_startup():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.state.library = build_library()
    logger.info("[startup] %s (%s) using %s store", settings.APP_NAME, settings.ENV,
                "sql" if settings.DATABASE_URL else "memory")
    if settings.SEED_DEMO_DATA:
        seed_demo_data(app.state.library)
