# server.py
import logging
import os

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fabricai import __version__
from fabricai import admin, auth, catalog, gallery, gateway, storage
from fabricai.db import Base, engine
from fabricai.errors import ServiceError, service_error_handler
from fabricai.settings import settings

# --- Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)

# --- App Initialization ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Gemini image-editing gateway with fabric catalog, gallery and admin endpoints.",
    version=__version__,
)

app.add_exception_handler(ServiceError, service_error_handler)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Database Startup Event ---
@app.on_event("startup")
async def on_startup():
    """Create database tables on startup."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("Database tables verified/created.")
    if not settings.GOOGLE_API_KEY:
        log.warning("GOOGLE_API_KEY not set. Requests must carry their own apiKey.")
    if not settings.ADMIN_SERVICE_KEY:
        log.warning("ADMIN_SERVICE_KEY not set. Admin user endpoints are disabled.")


# =======================================
# ROUTER INCLUSION
# =======================================

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(gateway.router)
api_router.include_router(catalog.router)
api_router.include_router(gallery.router)
api_router.include_router(admin.router)

app.include_router(api_router, prefix=settings.API_PREFIX)
app.include_router(storage.router)


@app.get("/")
async def health():
    """Health check."""
    return {"status": "ok", "message": "Sofa Visualizer API"}


def run():
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3001"))
    log.info(f"Sofa Visualizer API running on port {port}")
    log.info("   POST /api/gemini/edit - Image editing with Gemini")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run()
