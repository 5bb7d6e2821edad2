from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from calico.core.config import Settings


def test_default_secret_key_allowed_in_development() -> None:
    settings = Settings(_env_file=None, app_env="development", secret_key="change-me")
    assert settings.secret_key == "change-me"


def test_default_secret_key_rejected_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_env="production", secret_key="change-me")


def test_placeholder_secret_key_prefix_rejected_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_env="prod", secret_key="change-me-in-production")


def test_custom_secret_key_allowed_in_production() -> None:
    settings = Settings(_env_file=None, app_env="production", secret_key="super-secure-value")
    assert settings.secret_key == "super-secure-value"


def test_display_timezone_resolves_to_zoneinfo() -> None:
    settings = Settings(_env_file=None, display_timezone="America/Bogota")
    assert settings.tzinfo == ZoneInfo("America/Bogota")


def test_unknown_display_timezone_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, display_timezone="Mars/Olympus_Mons")


def test_booking_policy_defaults() -> None:
    settings = Settings(_env_file=None, log_level=" debug ")

    assert settings.log_level == "DEBUG"
    assert settings.slot_duration_minutes == 60
    assert settings.session_cancel_lead_hours == 2
    assert settings.booking_min_advance_minutes == 60
    assert settings.session_requires_approval is True


def test_non_positive_slot_duration_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, slot_duration_minutes=0)
