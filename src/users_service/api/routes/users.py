"""
User CRUD API routes

Every route is a direct store operation. Unknown or malformed IDs yield a
`null` body with status 200 rather than a 404.
"""

import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends

from users_service.models.user import UserCreateRequest, UserReplaceRequest
from users_service.services.users_service import UsersService, get_users_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def list_users(service: UsersService = Depends(get_users_service)) -> List[Dict[str, Any]]:
    """Retrieve all users"""
    users = await service.list_users()
    return [user.to_document() for user in users]


@router.get("/{user_id}")
async def get_user(user_id: str, service: UsersService = Depends(get_users_service)) -> Optional[Dict[str, Any]]:
    """Retrieve a single user by ID"""
    user = await service.get_user(user_id)
    return user.to_document() if user else None


@router.post("", status_code=201)
async def create_user(
    request: UserCreateRequest,
    service: UsersService = Depends(get_users_service)
) -> Dict[str, Any]:
    """Create a new user"""
    user = await service.create_user(request)
    return user.to_document()


@router.put("/{user_id}")
async def replace_user(
    user_id: str,
    request: UserReplaceRequest,
    service: UsersService = Depends(get_users_service)
) -> Optional[Dict[str, Any]]:
    """Replace a user's fields and return the stored user"""
    user = await service.replace_user(user_id, request)
    return user.to_document() if user else None


@router.delete("/{user_id}")
async def delete_user(user_id: str, service: UsersService = Depends(get_users_service)) -> Optional[Dict[str, Any]]:
    """Delete a user and return the deleted record"""
    user = await service.delete_user(user_id)
    return user.to_document() if user else None
