"""
Main FastAPI application for the coin ledger and contact-allocation engine.
Serves health, professional coin operations, request hooks, payment callback,
admin API and metrics.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from contact_ledger.api.error_handlers import register_error_handlers
from contact_ledger.api.routes import admin, health, payments, professionals, requests
from contact_ledger.core.config import settings
from contact_ledger.core.logging import configure_logging
from contact_ledger.utils.metrics import router as metrics_router


configure_logging()

app = FastAPI(
    title="Contact Ledger API",
    description="Coin balances, contact unlocks and refunds for the marketplace",
    version="1.0.0",
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(professionals.router)
app.include_router(requests.router)
app.include_router(payments.router)
app.include_router(admin.router)
app.include_router(metrics_router)
