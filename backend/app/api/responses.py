"""Success envelope and camelCase serialization of stored documents."""

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from pydantic.alias_generators import to_camel


def _camel_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {(to_camel(k) if "_" in k else k): _camel_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camel_keys(v) for v in value]
    return value


def camelize(value: Any) -> Any:
    """JSON-safe copy of ``value`` with snake_case dict keys turned into camelCase."""
    return _camel_keys(jsonable_encoder(value))


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    body: dict = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = camelize(data)
    return body
