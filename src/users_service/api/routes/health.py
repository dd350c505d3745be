"""
Health check API route
"""

from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException

from users_service.database.connection import get_user_store
from users_service.database.store import UserStore

router = APIRouter()


@router.get("/")
async def health_check(store: UserStore = Depends(get_user_store)):
    """Health check - reports the active store and its connectivity"""
    try:
        await store.ping()
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {str(e)}")

    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "store": store.name
    }
