"""
Bootstrap settings

Values come from the environment, the same way the services read DATABASE_URL.
"""
import os
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, EmailStr, Field

from catalog import DATABASE_NAMES

TRUTHY = {"1", "true", "yes", "on"}


def password_env_var(database_name: str) -> str:
    # passenger_db -> PASSENGER_DB_PASSWORD
    return f"{database_name.upper()}_PASSWORD"


class Settings(BaseModel):
    database_url: str = Field("mongodb://localhost:27017", description="Admin connection string")
    connect_retries: int = Field(3, ge=1, description="Attempts for the initial ping")
    retry_delay: float = Field(2.0, ge=0, description="Seconds between connection attempts")
    server_timeout_ms: int = Field(5000, ge=1, description="Server selection timeout")
    create_users: bool = Field(True, description="Provision per-service users")
    credentials_file: str = Field("service-credentials.json", description="Where new credentials are written")
    log_level: str = Field("INFO")
    admin_username: str = Field("admin")
    admin_email: EmailStr = Field("admin@transport.gov.na")
    admin_password: Optional[str] = Field(None, description="Seeded admin password, generated when unset")
    service_passwords: Dict[str, str] = Field(default_factory=dict, description="Database name -> service password")
    port: int = Field(8000)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {}
        if env.get("DATABASE_URL"):
            values["database_url"] = env["DATABASE_URL"]
        if env.get("BOOTSTRAP_CONNECT_RETRIES"):
            values["connect_retries"] = int(env["BOOTSTRAP_CONNECT_RETRIES"])
        if env.get("BOOTSTRAP_RETRY_DELAY"):
            values["retry_delay"] = float(env["BOOTSTRAP_RETRY_DELAY"])
        if env.get("BOOTSTRAP_SERVER_TIMEOUT_MS"):
            values["server_timeout_ms"] = int(env["BOOTSTRAP_SERVER_TIMEOUT_MS"])
        if env.get("BOOTSTRAP_CREATE_USERS"):
            values["create_users"] = env["BOOTSTRAP_CREATE_USERS"].strip().lower() in TRUTHY
        if env.get("BOOTSTRAP_CREDENTIALS_FILE"):
            values["credentials_file"] = env["BOOTSTRAP_CREDENTIALS_FILE"]
        if env.get("LOG_LEVEL"):
            values["log_level"] = env["LOG_LEVEL"].upper()
        if env.get("ADMIN_USERNAME"):
            values["admin_username"] = env["ADMIN_USERNAME"]
        if env.get("ADMIN_EMAIL"):
            values["admin_email"] = env["ADMIN_EMAIL"]
        if env.get("ADMIN_PASSWORD"):
            values["admin_password"] = env["ADMIN_PASSWORD"]
        if env.get("PORT"):
            values["port"] = int(env["PORT"])

        passwords = {}
        for name in DATABASE_NAMES:
            secret = env.get(password_env_var(name))
            if secret:
                passwords[name] = secret
        values["service_passwords"] = passwords
        return cls(**values)
