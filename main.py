"""
Premium Lifecycle Service
Plan upgrades, trial conversion, auto-renew, expiration sweeps and pre-expiry reminders
"""

from pathlib import Path
import logging
import traceback

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

# Import routers
from routers.premium_router import premium_router
from routers.notifications_router import notifications_router
from routers.internal_router import internal_router
from database import init_db
from config.settings import settings, IS_PRODUCTION

# ============================================================================
# LOGGING
# ============================================================================

# Logging setup - write ALL events to /logs/app.log
LOGS_DIR = Path("./logs")
LOGS_DIR.mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOGS_DIR / "app.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP SETUP
# ============================================================================

app = FastAPI(title="Premium Lifecycle Service")


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception: {e}\n{traceback.format_exc()}")
            return JSONResponse(
                status_code=500,
                content={"ok": False, "error": "Internal Server Error"}
            )


app.add_middleware(UncaughtExceptionMiddleware)

# CORS MUST be near the bottom
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# STARTUP
# ============================================================================
@app.on_event("startup")
async def log_runtime_mode():
    """Log sweep configuration so a paused sweeper is visible in the logs"""
    logger.info(
        f"Starting in {'production' if IS_PRODUCTION else 'development'} mode "
        f"(sweep_batch_size={settings.sweep_batch_size}, disable_sweep={settings.disable_sweep})"
    )
    if settings.disable_sweep:
        logger.warning("DISABLE_SWEEP is set: expiration sweeps will report zero work")


# Initialize database on startup
@app.on_event("startup")
async def initialize_database():
    """Create all tables if they do not exist."""
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


@app.get("/health")
async def health():
    return {"ok": True}


# ============================================================================
# INCLUDE ROUTERS
# ============================================================================
app.include_router(premium_router)
app.include_router(notifications_router)
app.include_router(internal_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
