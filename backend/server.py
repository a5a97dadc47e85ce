from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from database import database
from routes import webhooks, billing, email

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting SnapIT Forms API")
    skip_db = os.environ.get("PYTEST_RUNNING") == "1"
    if not skip_db:
        await database.connect()

    # Stripe config: log mode (test/live) from key prefix (no secret keys)
    stripe_key = (os.environ.get("STRIPE_SECRET_KEY") or os.environ.get("STRIPE_API_KEY") or "").strip()
    if not stripe_key:
        logger.error("STRIPE_SECRET_KEY / STRIPE_API_KEY is not set. Checkout will fail.")
    else:
        stripe_mode = "test" if stripe_key.startswith("sk_test_") else "live"
        logger.info("STRIPE_MODE = %s (from Stripe key prefix)", stripe_mode)

    from services.stripe_webhook_service import get_webhook_secret
    if not get_webhook_secret():
        logger.error("STRIPE_WEBHOOK_SECRET is not set. All Stripe webhooks will be rejected.")

    yield

    # Shutdown
    logger.info("Shutting down SnapIT Forms API")
    if not skip_db:
        await database.close()

# Create FastAPI app
app = FastAPI(
    title="SnapIT Forms API",
    description="Form builder billing, Stripe webhooks and notifications",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(webhooks.router)
app.include_router(billing.router)
app.include_router(email.router)


# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
