import pytest
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

PLAYER_PAGE = "http://localhost:8712"
LAN_PAGE = "http://192.168.1.20:8712"


class TestParseStringList:
    @pytest.mark.parametrize(
        "raw",
        [
            f'["{PLAYER_PAGE}","{LAN_PAGE}"]',
            f"{PLAYER_PAGE},{LAN_PAGE}",
            f"  {PLAYER_PAGE} ,, {LAN_PAGE}, ",
            [PLAYER_PAGE, LAN_PAGE],
        ],
    )
    def test_accepted_forms(self, raw):
        assert parse_string_list(raw) == [PLAYER_PAGE, LAN_PAGE]

    @pytest.mark.parametrize("raw", ["", ",", " , ,", "[]", []])
    def test_empty_rejected_by_default(self, raw):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list(raw)

    @pytest.mark.parametrize("raw", ["", ",", "[]", []])
    def test_empty_allowed_when_requested(self, raw):
        # a host served only to itself needs no CORS origins
        assert parse_string_list(raw, allow_empty=True) == []

    def test_truncated_json_rejected(self):
        with pytest.raises(ValueError, match="Invalid JSON array"):
            parse_string_list(f'["{PLAYER_PAGE}"')

    def test_non_string_items_rejected(self):
        with pytest.raises(ValueError, match="array of strings"):
            parse_string_list(f'["{PLAYER_PAGE}", 8712]')


class _OriginSettings(BaseSettings):
    model_config = {"env_prefix": "LOTO_TEST_"}

    cors_origins: list[str] = []
    room_codes: list[str] = []


class TestStringListEnvSettingsSource:
    def test_string_list_field_passed_through_raw(self, monkeypatch):
        monkeypatch.setenv("LOTO_TEST_CORS_ORIGINS", f"{PLAYER_PAGE},{LAN_PAGE}")
        values = StringListEnvSettingsSource(_OriginSettings)()
        assert values["cors_origins"] == f"{PLAYER_PAGE},{LAN_PAGE}"

    def test_other_list_fields_are_json_decoded(self, monkeypatch):
        monkeypatch.setenv("LOTO_TEST_ROOM_CODES", '["QWERTY", "ABCDEF"]')
        assert StringListEnvSettingsSource(_OriginSettings)()["room_codes"] == ["QWERTY", "ABCDEF"]
