from fastapi import APIRouter
from typing import Dict

router = APIRouter()


@router.get("/health")
async def get_health() -> Dict:
    """
    Lightweight liveness probe. Returns HTTP 200 when the import service is reachable.
    """
    return {"description": "Service reachable."}
