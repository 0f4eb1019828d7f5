# ============================================================
# tuition/schemas/common.py
#
# Shapes shared by every endpoint. Naming convention:
#   SomethingRequest  → body for POST requests
#   SomethingResponse → what the API returns inside `data`
# ============================================================

from pydantic import BaseModel
from typing import Optional, Generic, TypeVar, List

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """
    Every endpoint returns this shape:
    {
        "success": true,
        "message": "Fee setup saved",
        "data": { ... }
    }
    """
    success: bool = True
    message: str = "OK"
    data: Optional[T] = None
    warnings: List[str] = []

