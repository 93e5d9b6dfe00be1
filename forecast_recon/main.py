# forecast_recon/main.py

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from forecast_recon.config import get_settings
from forecast_recon.routers import health, reconcile, gl_entries, order_forecasts

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ============================================
# Create FastAPI app
# ============================================

app = FastAPI(
    title=settings.app_name,
    description="Reconciliation engine for order forecasts ↔ general ledger",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# ============================================
# CORS middleware
# ============================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# Include routers
# ============================================

app.include_router(health.router, tags=["Health"])
app.include_router(reconcile.router, prefix="/reconciliation", tags=["Reconciliation"])
app.include_router(gl_entries.router, prefix="/gl-entries", tags=["GL Entries"])
app.include_router(order_forecasts.router, prefix="/order-forecasts", tags=["Order Forecasts"])

# ============================================
# Root endpoint
# ============================================

@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs" if settings.debug else None,
    }
