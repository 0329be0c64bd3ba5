"""
Relay settings.

Values are read from the environment (prefix ``MONGODB_RELAY_``) or a
``.env`` file. Explicit constructor arguments on the gateway and the client
always win over these.
"""

from __future__ import annotations

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

PASSWORD_ENV_VAR = "MONGODB_RELAY_PASSWORD"


class RelaySettings(BaseSettings):
    """
    Environment-backed settings.

    Attributes:
        password: Shared secret checked against the ``bearer`` header
        url: Gateway URL used by clients constructed without one
        timeout: Default client request timeout in seconds
    """

    password: SecretStr | None = None
    url: str | None = None
    timeout: float = 30.0

    model_config = SettingsConfigDict(
        env_prefix="MONGODB_RELAY_",
        env_file=".env",
        extra="ignore",
    )


def resolve_password(password: str | None, settings: RelaySettings | None = None) -> str:
    """
    Pick the shared secret from an explicit argument or the settings.

    Raises:
        ConfigurationError: If neither provides a non-empty secret.
    """
    if password:
        return password
    settings = settings or RelaySettings()
    if settings.password is not None and settings.password.get_secret_value():
        return settings.password.get_secret_value()
    raise ConfigurationError(f"Pass a relay password explicitly or set {PASSWORD_ENV_VAR}")
