"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from callflow.api.v1.endpoints import ivr

api_router = APIRouter()

# IVR webhooks (entry / event / log) and call readback
api_router.include_router(ivr.router)
