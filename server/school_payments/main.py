from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from school_payments.api.v1.endpoints import auth, fees, payments, uploads, dashboard
from school_payments.core.config import settings
from school_payments.db.supabase import initialize_database

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting School Payments API...")
    try:
        await initialize_database()
        logger.info("✓ Supabase connection established")
    except Exception as e:
        logger.error(f"✗ Supabase connection failed: {e}")

    yield

    logger.info("Shutting down School Payments API...")

# Initialize FastAPI app
app = FastAPI(
    title="School Payments API",
    description="Fee ledger, payment submission and verification for school accounting",
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }

# Include API routers
prefix = settings.API_V1_PREFIX
app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Authentication"])
app.include_router(fees.router, prefix=f"{prefix}/fees", tags=["Fees"])
app.include_router(payments.router, prefix=f"{prefix}/payments", tags=["Payments"])
app.include_router(uploads.router, prefix=f"{prefix}/uploads", tags=["Uploads"])
app.include_router(dashboard.router, prefix=f"{prefix}/dashboard", tags=["Dashboard"])

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "School Payments API",
        "docs": "/api/docs",
        "version": settings.VERSION
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "school_payments.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development"
    )
