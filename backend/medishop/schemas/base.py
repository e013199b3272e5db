from typing import Any, Optional, Type

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire; both accepted on input"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def dump(schema: Type[BaseModel], obj: Any) -> dict:
    """Serialize an ORM object (or dict) through a response schema"""
    return schema.model_validate(obj).model_dump(by_alias=True, mode="json")


def envelope(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body
