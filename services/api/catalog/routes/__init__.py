"""API routes."""

from fastapi import APIRouter

from catalog.routes import admin

api_router = APIRouter()

# Admin endpoints (variants, inventory, reconciliation)
api_router.include_router(admin.router, prefix="/v1/admin", tags=["admin"])
