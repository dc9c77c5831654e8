"""Unit tests for the tenant-scoped base repository."""

import pytest
import pytest_check
from pytest_mock import MockerFixture, MockType

from cellgate.cells.b2b_access.models import B2BGlobalSettings
from cellgate.infrastructure.database.repository import BaseRepository


@pytest.fixture
def repository(db_session: MockType) -> BaseRepository[B2BGlobalSettings]:
    return BaseRepository(db_session, B2BGlobalSettings)


def make_settings_row(**overrides: object) -> B2BGlobalSettings:
    values: dict[str, object] = {
        "tenant_id": "tenant-a",
        "default_hide_price_text": "Login to see prices",
        "default_login_prompt_text": "Sign in",
        "default_guest_message": "Welcome",
    }
    values.update(overrides)
    return B2BGlobalSettings(**values)


@pytest.mark.unit
class TestBaseRepository:
    async def test_get_by_id_is_tenant_scoped(
        self, repository: BaseRepository[B2BGlobalSettings], db_session: MockType
    ) -> None:
        row = make_settings_row(id=7)
        db_session.execute.return_value.scalar_one_or_none.return_value = row

        result = await repository.get_by_id("tenant-a", 7)

        assert result is row
        statement = str(db_session.execute.call_args.args[0])
        with pytest_check.check:
            assert "b2b_global_settings.id" in statement
        with pytest_check.check:
            assert "b2b_global_settings.tenant_id" in statement

    async def test_get_by_id_missing(
        self, repository: BaseRepository[B2BGlobalSettings], db_session: MockType
    ) -> None:
        db_session.execute.return_value.scalar_one_or_none.return_value = None

        assert await repository.get_by_id("tenant-b", 7) is None

    async def test_create_flushes_and_refreshes(
        self,
        repository: BaseRepository[B2BGlobalSettings],
        db_session: MockType,
    ) -> None:
        row = make_settings_row()

        def assign_id() -> None:
            row.id = 42

        db_session.flush.side_effect = assign_id

        result = await repository.create(row)

        assert result.id == 42
        db_session.add.assert_called_once_with(row)
        db_session.refresh.assert_awaited_once_with(row)

    async def test_update_sets_known_fields_only(
        self,
        repository: BaseRepository[B2BGlobalSettings],
        db_session: MockType,
        mocker: MockerFixture,
    ) -> None:
        warning = mocker.patch("cellgate.infrastructure.database.repository.logger.warning")
        row = make_settings_row(id=3)

        result = await repository.update(
            row, {"default_currency": "USD", "not_a_column": True}
        )

        assert result.default_currency == "USD"
        assert not hasattr(result, "not_a_column")
        warning.assert_called_once()
        db_session.flush.assert_awaited_once()

    async def test_find_one_by_filters_columns(
        self, repository: BaseRepository[B2BGlobalSettings], db_session: MockType
    ) -> None:
        db_session.execute.return_value.scalar_one_or_none.return_value = None

        await repository.find_one_by("tenant-a", default_currency="NGN")

        statement = str(db_session.execute.call_args.args[0])
        assert "b2b_global_settings.default_currency" in statement
        assert "LIMIT" in statement
