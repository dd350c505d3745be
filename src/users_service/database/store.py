"""
User document stores

Documents are plain dicts shaped like the API payload ({"name", "job", "age",
"isMarried"}); the store owns the "_id" identity key.
"""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

CREATE_USERS_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY,
    document JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""


def parse_id(user_id: str) -> Optional[uuid.UUID]:
    """Return the UUID for user_id, or None when it is malformed"""
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        return None


class UserStore:
    """Persistence interface for user documents"""

    name = "abstract"

    async def find_all(self) -> List[Document]:
        raise NotImplementedError

    async def find_by_id(self, user_id: str) -> Optional[Document]:
        raise NotImplementedError

    async def insert(self, document: Document) -> Document:
        raise NotImplementedError

    async def replace(self, user_id: str, document: Document) -> Optional[Document]:
        raise NotImplementedError

    async def delete(self, user_id: str) -> Optional[Document]:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True


class InMemoryUserStore(UserStore):
    """Process-local store, used when no DATABASE_URL is configured and in tests"""

    name = "memory"

    def __init__(self):
        self._documents: Dict[uuid.UUID, Document] = {}

    def _with_id(self, key: uuid.UUID, document: Document) -> Document:
        return {"_id": str(key), **document}

    async def find_all(self) -> List[Document]:
        return [self._with_id(key, doc) for key, doc in self._documents.items()]

    async def find_by_id(self, user_id: str) -> Optional[Document]:
        key = parse_id(user_id)
        if key is None or key not in self._documents:
            return None
        return self._with_id(key, self._documents[key])

    async def insert(self, document: Document) -> Document:
        key = uuid.uuid4()
        self._documents[key] = dict(document)
        return self._with_id(key, self._documents[key])

    async def replace(self, user_id: str, document: Document) -> Optional[Document]:
        key = parse_id(user_id)
        if key is None or key not in self._documents:
            return None
        self._documents[key] = dict(document)
        return self._with_id(key, self._documents[key])

    async def delete(self, user_id: str) -> Optional[Document]:
        key = parse_id(user_id)
        if key is None or key not in self._documents:
            return None
        return self._with_id(key, self._documents.pop(key))


class PostgresUserStore(UserStore):
    """Stores each user as a JSONB document in PostgreSQL"""

    name = "postgres"

    def __init__(self, pool):
        self.pool = pool

    @staticmethod
    def _row_to_document(row) -> Optional[Document]:
        if row is None:
            return None
        document = row["document"]
        if isinstance(document, str):
            document = json.loads(document)
        return {"_id": str(row["id"]), **document}

    async def find_all(self) -> List[Document]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT id, document FROM users ORDER BY created_at")
        return [self._row_to_document(row) for row in rows]

    async def find_by_id(self, user_id: str) -> Optional[Document]:
        key = parse_id(user_id)
        if key is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT id, document FROM users WHERE id = $1", key)
        return self._row_to_document(row)

    async def insert(self, document: Document) -> Document:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "INSERT INTO users (id, document) VALUES ($1, $2::jsonb) RETURNING id, document",
                uuid.uuid4(),
                json.dumps(document)
            )
        return self._row_to_document(row)

    async def replace(self, user_id: str, document: Document) -> Optional[Document]:
        key = parse_id(user_id)
        if key is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "UPDATE users SET document = $2::jsonb WHERE id = $1 RETURNING id, document",
                key,
                json.dumps(document)
            )
        return self._row_to_document(row)

    async def delete(self, user_id: str) -> Optional[Document]:
        key = parse_id(user_id)
        if key is None:
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("DELETE FROM users WHERE id = $1 RETURNING id, document", key)
        return self._row_to_document(row)

    async def ping(self) -> bool:
        async with self.pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return True
