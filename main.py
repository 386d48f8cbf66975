import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

import auth
import catalog
import database
import errors
import executor
import progress
import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("tech_mastery")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Database backend: %s", database.backend)
    if database.db is not None:
        database.ensure_indexes()
        catalog.seed_if_empty()
    else:
        logger.error("Starting without a database; data routes will return 503")
    if settings.SESSION_SECRET == settings.DEFAULT_SESSION_SECRET:
        logger.warning("SESSION_SECRET is not set; using the development default")
    yield


app = FastAPI(title="Tech Mastery API", lifespan=lifespan)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    https_only=settings.SESSION_HTTPS_ONLY,
    same_site="lax",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

errors.register(app)

app.include_router(auth.router)
app.include_router(progress.router)
app.include_router(catalog.router)
app.include_router(executor.router)


# ---------- Routes ----------
@app.get("/")
def root():
    return {"message": "Tech Mastery API running"}


@app.get("/health")
def health():
    return {
        "status": "OK",
        "message": "Tech Mastery Backend is running!",
        "mongodb": "Connected" if database.is_connected() else "Disconnected",
    }


@app.get("/test")
def test_database():
    resp = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_backend": database.backend,
        "database_url": "✅ Set" if settings.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if settings.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    if database.db is not None:
        resp["database"] = "✅ Available"
        resp["connection_status"] = "Connected"
        try:
            resp["collections"] = database.db.list_collection_names()[:10]
            resp["database"] = "✅ Connected & Working"
        except Exception as e:
            logger.warning("Database diagnostics failed", exc_info=True)
            resp["database"] = f"⚠️ Connected but error: {type(e).__name__}"
    return resp


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
