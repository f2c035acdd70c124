"""Tests for tiko2mqtt._providers — provider variant table.

Test Techniques Used:
    - Decision Table Testing: one row of flags per provider
    - Error Guessing: unknown provider names
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from tiko2mqtt._providers import PROVIDER_PROFILES, Provider, get_provider_profile


class TestProviderProfiles:
    """Technique: Decision Table Testing."""

    def test_tiko(self) -> None:
        profile = get_provider_profile(Provider.TIKO)
        assert profile.base_url == "https://particuliers-tiko.fr"
        assert profile.retain_session is False
        assert profile.token_lifespan == timedelta(hours=12)
        assert profile.nullable_humidity is False

    def test_mon_pilotage_elec(self) -> None:
        profile = get_provider_profile("mon-pilotage-elec")
        assert profile.base_url == "https://portal-engie.tiko.ch"
        assert profile.retain_session is True
        assert profile.token_lifespan is None
        assert profile.nullable_humidity is True

    def test_every_provider_has_a_profile(self) -> None:
        assert set(PROVIDER_PROFILES) == set(Provider)
        for provider, profile in PROVIDER_PROFILES.items():
            assert profile.provider is provider

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="somebody-else"):
            get_provider_profile("somebody-else")
