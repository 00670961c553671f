"""
Motorcycle Parts Store API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Motorcycle Parts Store API",
    description="REST API for the motorcycle parts catalog, compatibility, orders, coupons and loyalty",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins to the storefront and admin hosts in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "moto-parts-store-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Motorcycle Parts Store API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import catalog, compatibility, coupons, loyalty, orders

app.include_router(catalog.router, prefix="/api/v1", tags=["Catalog"])
app.include_router(compatibility.router, prefix="/api/v1", tags=["Compatibility"])
app.include_router(orders.router, prefix="/api/v1", tags=["Orders"])
app.include_router(coupons.router, prefix="/api/v1", tags=["Coupons"])
app.include_router(loyalty.router, prefix="/api/v1", tags=["Loyalty"])
