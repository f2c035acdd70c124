"""Test factory for Settings.

Provides :func:`make_settings` — a convenience factory that creates
:class:`~tiko2mqtt._settings.Settings` instances without depending on
``.env`` files or real environment variables.
"""

from __future__ import annotations

from typing import Any

from pydantic import SecretStr
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from tiko2mqtt._settings import Settings, TikoSettings

TEST_EMAIL = "user@example.com"
TEST_PASSWORD = "hunter2"


class _IsolatedSettings(Settings):
    """Settings subclass that ignores all ambient configuration sources.

    Only ``init_settings`` is kept, so tests are deterministic
    regardless of the host environment.
    """

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],  # noqa: ARG003
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings,)


def make_settings(**overrides: Any) -> Settings:
    """Create a ``Settings`` instance with sensible test defaults.

    The factory ignores ``os.environ``, ``.env`` files and secret
    directories.  Unless *overrides* provide ``tiko``, the account is
    ``user@example.com`` on the ``tiko`` provider.

    Example::

        settings = make_settings()
        assert settings.mqtt.host == "localhost"

        from tiko2mqtt._settings import MqttSettings
        custom = make_settings(mqtt=MqttSettings(host="broker.test"))
        assert custom.mqtt.host == "broker.test"
    """
    overrides.setdefault(
        "tiko",
        TikoSettings(email=TEST_EMAIL, password=SecretStr(TEST_PASSWORD)),
    )
    # _env_file disables dotenv loading but is missing from the
    # generated __init__ signature.
    return _IsolatedSettings(_env_file=None, **overrides)  # type: ignore[call-arg]
