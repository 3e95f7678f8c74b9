"""
Centralized environment settings using pydantic-settings.
"""
import os
from typing import Dict, Optional
from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Well-known public client used by Kusto tools for user-interactive flows
DEFAULT_KUSTO_CLIENT_APP_ID = "db662dc1-0cfe-4e1c-a843-19a68e65be58"
DEFAULT_REDIRECT_URI = "http://localhost"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables and .env files.
    """
    model_config = SettingsConfigDict(
        env_file=('.env', '.env.local'),  # Load both .env and .env.local
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False
    )

    # --- Logging ---
    LOG_LEVEL: str = Field("INFO", description="Logging level")
    LOG_JSON: bool = Field(False, description="Render logs as JSON instead of console text")

    # --- Profiles ---
    KUSTO_CONFIG_PATH: str = Field("config/config.yaml", description="Path to the YAML connection profiles file")

    # --- Connection ---
    # Primary method: KUSTO_CONNECTION_STRING
    KUSTO_CONNECTION_STRING: Optional[SecretStr] = Field(None, description="Default Kusto connection string")

    # Named connections are loaded dynamically from env vars starting with KUSTO_CONN_

    # --- Auth defaults ---
    KUSTO_CLIENT_APP_ID: str = Field(DEFAULT_KUSTO_CLIENT_APP_ID, description="Client id used when none is configured")
    KUSTO_REDIRECT_URI: str = Field(DEFAULT_REDIRECT_URI, description="Redirect URI for interactive login")
    KUSTO_RESOURCE_ID: Optional[str] = Field(None, description="Token audience override; defaults to the data source")

    @computed_field
    @property
    def connection_strings(self) -> Dict[str, str]:
        """
        Aggregates connection strings from:
        1. KUSTO_CONNECTION_STRING (as "default")
        2. KUSTO_CONN_* environment variables
        """
        conns = {}

        if self.KUSTO_CONNECTION_STRING:
            conns["default"] = self.KUSTO_CONNECTION_STRING.get_secret_value()

        for key, value in os.environ.items():
            if key.upper().startswith('KUSTO_CONN_'):
                name = key[len('KUSTO_CONN_'):].lower()
                if name and name not in conns:
                    conns[name] = value

        return conns

# Global settings instance
settings = Settings()
