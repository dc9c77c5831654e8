"""JSON response class using orjson serialization.

Cell results carry money as ``Decimal``; orjson has no native encoding for
it, so ``Decimal`` values are written as JSON numbers through a default
hook. datetime, date and UUID values are handled natively.
"""

from decimal import Decimal
from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _default(value: object) -> Any:  # noqa: ANN401 - returns any JSON-serializable value
    """Encode types orjson does not handle natively."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    msg = f"Type is not JSON serializable: {type(value).__name__}"
    raise TypeError(msg)


class ORJSONResponse(JSONResponse):
    """FastAPI Response class using orjson for JSON serialization.

    Attributes:
        media_type: The media type for the response.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        """Render the content as JSON using orjson.

        Args:
            content: The content to serialize to JSON.

        Returns:
            bytes: The JSON-encoded bytes.
        """
        if isinstance(content, BaseModel):
            content = content.model_dump(by_alias=True)

        # Use consistent sorting for predictable output
        return orjson.dumps(content, default=_default, option=orjson.OPT_SORT_KEYS)
