"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from realty_corridor.config.settings import Settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.default_detector_strategy == "basic"
    assert settings.detector_timeout_seconds == 120.0
    assert settings.corridor_debounce_seconds == 0.3
    assert settings.address_match_radii_m == [30.0, 100.0, 300.0]


def test_strategy_is_normalized_and_validated() -> None:
    assert Settings(default_detector_strategy=" Advanced ").default_detector_strategy == (
        "advanced"
    )
    with pytest.raises(ValidationError):
        Settings(default_detector_strategy="fuzzy")


def test_radii_accept_comma_separated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ADDRESS_MATCH_RADII_M", "20, 80, 250")

    assert Settings().address_match_radii_m == [20.0, 80.0, 250.0]


@pytest.mark.parametrize("radii", [[100.0, 30.0, 300.0], [30.0, 100.0], [0.0, 10.0, 20.0]])
def test_radii_must_be_three_ascending_positive_values(radii: list[float]) -> None:
    with pytest.raises(ValidationError):
        Settings(address_match_radii_m=radii)


def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(detector_timeout_seconds=0)
