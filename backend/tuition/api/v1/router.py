# tuition/api/v1/router.py
# Registers all endpoint routers under /api/v1

from fastapi import APIRouter
from tuition.api.v1.endpoints import fees

api_router = APIRouter()

api_router.include_router(fees.router, prefix="/fees")
