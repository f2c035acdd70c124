"""Backends that speak the tiko GraphQL API.

Two commercial offers run on the same platform with a few differences
in how they must be called.  Every difference lives in one
:class:`ProviderProfile` row so request code branches once, on the
profile, instead of sprinkling provider checks around.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum

GRAPHQL_PATH = "/api/v3/graphql/"


class Provider(StrEnum):
    """Supported backends, as named in configuration."""

    TIKO = "tiko"
    MON_PILOTAGE_ELEC = "mon-pilotage-elec"


@dataclass(frozen=True, slots=True)
class ProviderProfile:
    """Per-provider connection details and API variant flags.

    Attributes:
        provider: The provider this profile describes.
        base_url: Scheme and host of the API.
        retain_session: Whether the login mutation must ask the backend
            to keep the session alive.
        token_lifespan: How long a freshly issued token may be reused,
            or ``None`` when tokens never expire.
        nullable_humidity: Whether rooms may report ``humidity: null``
            (no humidity sensor).
    """

    provider: Provider
    base_url: str
    retain_session: bool
    token_lifespan: timedelta | None
    nullable_humidity: bool


PROVIDER_PROFILES: dict[Provider, ProviderProfile] = {
    Provider.TIKO: ProviderProfile(
        provider=Provider.TIKO,
        base_url="https://particuliers-tiko.fr",
        retain_session=False,
        token_lifespan=timedelta(hours=12),
        nullable_humidity=False,
    ),
    Provider.MON_PILOTAGE_ELEC: ProviderProfile(
        provider=Provider.MON_PILOTAGE_ELEC,
        base_url="https://portal-engie.tiko.ch",
        retain_session=True,
        token_lifespan=None,
        nullable_humidity=True,
    ),
}


def get_provider_profile(provider: Provider | str) -> ProviderProfile:
    """Return the profile for *provider*.

    Raises:
        ValueError: If *provider* is not a known provider name.
    """
    return PROVIDER_PROFILES[Provider(provider)]
