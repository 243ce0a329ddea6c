"""
Main API Router - Consolidates all module routes
"""
from fastapi import APIRouter

from steeltrack.api.v1 import auth, imports, inventory, sales, system

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(sales.router, prefix="/sales", tags=["sales"])
api_router.include_router(imports.router, prefix="/imports", tags=["imports"])
api_router.include_router(system.router, prefix="/system", tags=["system"])
