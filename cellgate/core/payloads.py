"""Pydantic base for cell payloads and results.

Payload keys on the wire are camelCase (``tenantId``, ``baseRate``) while
Python attributes are snake_case. ``parse_payload`` turns a raw mapping into
a model and reports failures as the gateway's own ``ValidationError`` with
the offending wire field names in the message.
"""

from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from cellgate.core.exceptions import ValidationError
from cellgate.core.types import Payload


class CamelModel(BaseModel):
    """Model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_payload(self) -> dict[str, Any]:
        """Dump with camelCase keys, keeping Decimal and datetime values."""
        return self.model_dump(by_alias=True)


def parse_payload[M: BaseModel](model: type[M], payload: Payload) -> M:
    """Validate ``payload`` against ``model``.

    Raises:
        ValidationError: Listing each invalid field as ``field: reason``.
    """
    try:
        return model.model_validate(dict(payload))
    except pydantic.ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(
            "Invalid payload - " + "; ".join(problems),
            context={"fields": [".".join(str(p) for p in err["loc"]) for err in e.errors()]},
            cause=e,
        ) from e
