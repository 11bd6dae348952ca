"""
CapstoneFlow settings, read from the environment and an optional .env file.
"""
import json
from typing import Any, List

from pydantic import field_validator
from pydantic_settings import BaseSettings


STATUS_POLICIES = ("open", "forward_only")


def parse_cors_origins(v: Any) -> List[str]:
    """Accept a JSON list or a comma separated string of origins"""
    if isinstance(v, list):
        return v
    if not isinstance(v, str):
        return []
    if v.startswith('['):
        try:
            return json.loads(v)
        except json.JSONDecodeError:
            pass
    return [origin.strip() for origin in v.split(',') if origin.strip()]


class Settings(BaseSettings):
    APP_NAME: str = "CapstoneFlow"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_VERSION: str = "v1"
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    DATABASE_URL: str
    DB_ECHO: bool = False

    # Tokens are issued by the identity provider; this service only verifies them
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    CORS_ORIGINS_STR: str = "http://localhost:3000,http://localhost:8081,http://127.0.0.1:3000"

    # Students a supervisor may hold when their own capacity is unset
    DEFAULT_SUPERVISOR_CAPACITY: int = 10
    # "open": overseers may set any pipeline stage; "forward_only": no moving back
    STATUS_TRANSITION_POLICY: str = "open"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @field_validator("STATUS_TRANSITION_POLICY")
    @classmethod
    def validate_status_policy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in STATUS_POLICIES:
            raise ValueError(f"STATUS_TRANSITION_POLICY must be one of {STATUS_POLICIES}")
        return v

    @field_validator("DEFAULT_SUPERVISOR_CAPACITY")
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        if v < 0:
            raise ValueError("DEFAULT_SUPERVISOR_CAPACITY cannot be negative")
        return v

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    def is_dev_mode(self) -> bool:
        return self.ENVIRONMENT == "development" or self.DEBUG


settings = Settings()
