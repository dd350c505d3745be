"""
User-related Pydantic models
"""

from typing import Union
from pydantic import BaseModel, ConfigDict, Field


class UserFields(BaseModel):
    """Fields a client may write; unknown fields are dropped"""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    job: str
    age: Union[int, float]
    is_married: bool = Field(True, alias="isMarried")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class UserCreateRequest(UserFields):
    pass


class UserReplaceRequest(UserFields):
    pass


class User(UserFields):
    """A stored user document"""
    id: str = Field(alias="_id")
