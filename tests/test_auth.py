"""Unit tests for admin API key authentication."""

from unittest.mock import Mock

import pytest

from app.core.auth import parse_api_keys, validate_admin_key, verify_admin_api_key
from app.core.config import AppSettings
from app.core.errors import ForbiddenAppError


def _app_settings(required: bool = True, keys: str | None = "valid-key-1,valid-key-2") -> AppSettings:
    return AppSettings(admin_api_key_required=required, admin_api_keys=keys)


def _request(app_settings: AppSettings) -> Mock:
    request = Mock()
    request.app.state.services.settings.app = app_settings
    return request


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_multiple_keys(self) -> None:
        assert parse_api_keys("key1,key2,key3") == {"key1", "key2", "key3"}

    def test_parse_keys_with_whitespace(self) -> None:
        """Test that whitespace is trimmed from keys."""
        assert parse_api_keys("key1 , key2  ,  key3") == {"key1", "key2", "key3"}

    @pytest.mark.parametrize("value", [None, "", "   ,  ,  "])
    def test_parse_empty_inputs_return_empty_set(self, value: str | None) -> None:
        assert parse_api_keys(value) == set()

    def test_parse_removes_duplicate_keys(self) -> None:
        assert parse_api_keys("key1,key2,key1,key3,key2") == {"key1", "key2", "key3"}


class TestValidateAdminKey:
    """Test core admin key validation logic."""

    def test_validate_bypassed_when_auth_disabled(self) -> None:
        settings = _app_settings(required=False, keys=None)

        validate_admin_key("any-random-key", settings)
        validate_admin_key(None, settings)

    @pytest.mark.parametrize("keys", [None, ""])
    def test_validate_raises_when_no_keys_configured(self, keys: str | None) -> None:
        with pytest.raises(ForbiddenAppError) as exc_info:
            validate_admin_key("some-key", _app_settings(keys=keys))

        assert exc_info.value.code == "admin_api_keys_not_configured"

    def test_validate_accepts_valid_key(self) -> None:
        validate_admin_key("valid-key-1", _app_settings())
        validate_admin_key("valid-key-2", _app_settings())

    def test_validate_rejects_invalid_key(self) -> None:
        with pytest.raises(ForbiddenAppError) as exc_info:
            validate_admin_key("invalid-key", _app_settings())

        assert exc_info.value.code == "invalid_api_key"
        assert "Invalid or missing API key" in exc_info.value.message

    @pytest.mark.parametrize("key", [None, ""])
    def test_validate_rejects_missing_key(self, key: str | None) -> None:
        with pytest.raises(ForbiddenAppError) as exc_info:
            validate_admin_key(key, _app_settings())

        assert exc_info.value.code == "missing_api_key"

    def test_validate_does_not_trim_provided_key(self) -> None:
        """Configured keys are trimmed; provided keys must match exactly."""
        settings = _app_settings(keys=" key1 , key2 ")

        validate_admin_key("key1", settings)
        with pytest.raises(ForbiddenAppError):
            validate_admin_key(" key1 ", settings)


class TestVerifyAdminKeyDependency:
    """Test the FastAPI dependency reading settings from the app container."""

    @pytest.mark.asyncio
    async def test_verify_bypassed_when_auth_disabled(self) -> None:
        await verify_admin_api_key(_request(_app_settings(required=False)), x_api_key=None)

    @pytest.mark.asyncio
    async def test_verify_raises_when_header_missing(self) -> None:
        with pytest.raises(ForbiddenAppError) as exc_info:
            await verify_admin_api_key(_request(_app_settings()), x_api_key=None)

        assert "Missing API key" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_verify_accepts_valid_key(self) -> None:
        await verify_admin_api_key(_request(_app_settings()), x_api_key="valid-key-2")
