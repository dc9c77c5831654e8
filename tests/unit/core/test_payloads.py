"""Unit tests for camelCase payload parsing."""

from decimal import Decimal

import pytest
from pydantic import Field

from cellgate.core.exceptions import ValidationError
from cellgate.core.payloads import CamelModel, parse_payload


class SampleRequest(CamelModel):
    tenant_id: str = Field(..., min_length=1)
    base_rate: Decimal = Field(..., ge=0, le=1)
    item_type: str = "general"


@pytest.mark.unit
class TestParsePayload:
    def test_camel_case_keys_are_accepted(self) -> None:
        request = parse_payload(SampleRequest, {"tenantId": "t1", "baseRate": "0.075"})

        assert request.tenant_id == "t1"
        assert request.base_rate == Decimal("0.075")
        assert request.item_type == "general"

    def test_snake_case_keys_are_accepted(self) -> None:
        request = parse_payload(SampleRequest, {"tenant_id": "t1", "base_rate": 0})

        assert request.tenant_id == "t1"

    def test_unknown_keys_are_ignored(self) -> None:
        request = parse_payload(
            SampleRequest, {"tenantId": "t1", "baseRate": 0, "unexpected": True}
        )

        assert not hasattr(request, "unexpected")

    def test_missing_field_is_named_in_message(self) -> None:
        with pytest.raises(ValidationError, match="tenantId") as exc_info:
            parse_payload(SampleRequest, {"baseRate": "0.1"})

        assert exc_info.value.context["fields"] == ["tenantId"]
        assert exc_info.value.error_code == "VALIDATION_ERROR"

    def test_every_invalid_field_is_reported(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(SampleRequest, {"tenantId": "", "baseRate": "2"})

        assert sorted(exc_info.value.context["fields"]) == ["baseRate", "tenantId"]


@pytest.mark.unit
def test_to_payload_uses_camel_case_keys() -> None:
    request = SampleRequest(tenant_id="t1", base_rate=Decimal("0.1"))

    assert request.to_payload() == {
        "tenantId": "t1",
        "baseRate": Decimal("0.1"),
        "itemType": "general",
    }
