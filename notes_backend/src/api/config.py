import logging
import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class ConfigurationError(Exception):
    """Raised when the service cannot run with the configuration it was given."""


# PUBLIC_INTERFACE
class Settings(BaseModel):
    """Runtime configuration, built once at startup and passed to the app."""
    database_url: str
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    token_expire_days: int = 30
    client_url: str = "http://localhost:3000"
    api_url: str = "http://localhost:5000"
    host: str = "0.0.0.0"
    port: int = 5000
    proxy_port: int = 3000
    environment: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


_ENV_NAMES = {
    "jwt_secret": "JWT_SECRET",
    "jwt_algorithm": "JWT_ALGORITHM",
    "token_expire_days": "JWT_EXPIRE_DAYS",
    "client_url": "CLIENT_URL",
    "api_url": "API_URL",
    "host": "HOST",
    "port": "PORT",
    "proxy_port": "PROXY_PORT",
    "environment": "APP_ENV",
    "log_level": "LOG_LEVEL",
}


# PUBLIC_INTERFACE
def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment (after loading .env).
    Raises ConfigurationError if DATABASE_URL is missing.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    database_url = environ.get("DATABASE_URL")
    if not database_url:
        raise ConfigurationError("DATABASE_URL environment variable must be set (see .env.example)")

    values = {"database_url": database_url}
    for field, name in _ENV_NAMES.items():
        if environ.get(name):
            values[field] = environ[name]
    return Settings(**values)


_handler: Optional[logging.Handler] = None


def configure_logging(level: str = "INFO") -> None:
    """Attach one stream handler to the root logger."""
    global _handler
    root = logging.getLogger()
    if _handler is None or _handler not in root.handlers:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(_handler)
    root.setLevel(level.upper())
