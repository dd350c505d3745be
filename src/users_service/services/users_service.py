"""
Users service - pass-through between the users routes and the document store
"""

import logging
from typing import List, Optional

from fastapi import Depends

from users_service.database.connection import get_user_store
from users_service.database.store import UserStore
from users_service.models.user import User, UserCreateRequest, UserReplaceRequest

logger = logging.getLogger(__name__)


class UsersService:
    """Service for user CRUD operations"""

    def __init__(self, store: UserStore):
        self.store = store

    async def list_users(self) -> List[User]:
        documents = await self.store.find_all()
        return [User.model_validate(doc) for doc in documents]

    async def get_user(self, user_id: str) -> Optional[User]:
        """
        Get a user by its ID

        Args:
            user_id: Identity key assigned by the store

        Returns:
            The user, or None when no user has this ID
        """
        document = await self.store.find_by_id(user_id)
        return User.model_validate(document) if document else None

    async def create_user(self, request: UserCreateRequest) -> User:
        """
        Create a new user

        Args:
            request: Validated user fields; isMarried defaults to true

        Returns:
            The stored user including its assigned ID
        """
        logger.info(f"Creating new user: {request.name}")
        document = await self.store.insert(request.to_document())
        return User.model_validate(document)

    async def replace_user(self, user_id: str, request: UserReplaceRequest) -> Optional[User]:
        logger.info(f"Replacing user: {user_id}")
        document = await self.store.replace(user_id, request.to_document())
        if document is None:
            logger.info(f"Replace skipped, user not found: {user_id}")
            return None
        return User.model_validate(document)

    async def delete_user(self, user_id: str) -> Optional[User]:
        logger.info(f"Deleting user: {user_id}")
        document = await self.store.delete(user_id)
        return User.model_validate(document) if document else None


def get_users_service(store: UserStore = Depends(get_user_store)) -> UsersService:
    """FastAPI dependency returning a service bound to the active store"""
    return UsersService(store)
