"""Service configuration read from the process environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

DEFAULT_ENV_FILE = "config.env"
DEFAULT_ENV = "DEVELOPMENT"
PRODUCTION = "PRODUCTION"
_LOCAL_SUFFIX = "-LOCAL"


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the MySQL database."""

    user: str = ""
    endpoint: str = ""
    port: str = ""
    password: str = field(default="", repr=False)


@dataclass(frozen=True)
class AwsConfig:
    """Credentials and region for AWS."""

    access_id: str = ""
    access_secret: str = field(default="", repr=False)
    region: str = ""


@dataclass(frozen=True)
class PlaidConfig:
    """Settings for the Plaid API."""

    client_id: str = ""
    secret: str = field(default="", repr=False)
    env: str = ""
    sandbox_secret: str = field(default="", repr=False)
    redirect_url: str = ""


@dataclass(frozen=True)
class BankingConfig:
    """Settings for the banking partner (Upwardli) API."""

    base_url: str = ""
    auth_url: str = ""
    api_url: str = ""
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    embedded_component_url: str = ""
    fbo_account_number: str = ""
    webhook_url: str = ""


@dataclass(frozen=True)
class Config:
    """The complete service configuration."""

    env: str = DEFAULT_ENV
    local: bool = False
    port: str = ""
    sentry_dsn: str = ""
    inter_service_secret: str = field(default="", repr=False)
    client_jwt_token_secret: str = field(default="", repr=False)
    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    aws: AwsConfig = field(default_factory=AwsConfig)
    plaid: PlaidConfig = field(default_factory=PlaidConfig)
    upwardli: BankingConfig = field(default_factory=BankingConfig)

    def is_production(self) -> bool:
        """Whether the service runs in the production environment."""
        return self.env == PRODUCTION


def load_from_env(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build a configuration from environment variables."""
    source = os.environ if environ is None else environ

    def get(key: str) -> str:
        return source.get(key, "") or ""

    env = get("ENV") or DEFAULT_ENV
    local = False
    if env.endswith(_LOCAL_SUFFIX):
        env = env.split("-")[0]
        local = True

    return Config(
        env=env,
        local=local,
        sentry_dsn=get("SENTRY_DSN"),
        inter_service_secret=get("INTER_SERVICE_SECRET"),
        client_jwt_token_secret=get("CLIENT_JWT_TOKEN_SECRET"),
        db=DatabaseConfig(
            user=get("DB_USER"),
            endpoint=get("DB_ENDPOINT"),
            port=get("DB_PORT"),
            password=get("DB_PASSWORD"),
        ),
        aws=AwsConfig(
            access_id=get("AWS_ACCESS_KEY_ID"),
            access_secret=get("AWS_SECRET_ACCESS_KEY"),
            region=get("AWS_REGION"),
        ),
        plaid=PlaidConfig(
            client_id=get("PLAID_CLIENT_ID"),
            secret=get("PLAID_SECRET"),
            env=get("PLAID_ENV"),
            sandbox_secret=get("PLAID_SANDBOX_SECRET"),
            redirect_url=get("PLAID_REDIRECT_URL"),
        ),
        upwardli=BankingConfig(
            auth_url=get("UPWARDLI_AUTH_URL"),
            api_url=get("UPWARDLI_API_URL"),
            client_id=get("UPWARDLI_CLIENT_ID"),
            client_secret=get("UPWARDLI_CLIENT_SECRET"),
            embedded_component_url=get("UPWARDLI_EMBEDDED_COMPONENT_URL"),
            fbo_account_number=get("UPWARDLI_FBO_ACCOUNT_NUMBER"),
        ),
    )


def validate(config: Config) -> None:
    """Check a loaded configuration; every setting is currently optional."""
    if not isinstance(config, Config):
        raise TypeError(f"expected Config, got {type(config).__name__}")


def load(
    env_file: str | os.PathLike[str] = DEFAULT_ENV_FILE,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Load the env file, then build and validate the configuration.

    Values already present in the environment win over those in the file.
    When ``environ`` is omitted the file's values are added to ``os.environ``.
    """
    path = Path(env_file)
    if path.is_file():
        file_values = {k: v for k, v in dotenv_values(path).items() if v is not None}
    else:
        print("Failed to load .env file")
        file_values = {}

    if environ is None:
        for key, value in file_values.items():
            os.environ.setdefault(key, value)
        source: Mapping[str, str] = os.environ
    else:
        source = {**file_values, **environ}

    config = load_from_env(source)
    validate(config)
    return config