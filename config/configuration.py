"""
Configuration Management Module.
Loads named connection profiles from config.yaml and allows overrides via environment variables.
"""
import yaml
from typing import Dict, Optional
from pathlib import Path
from pydantic import BaseModel, Field, SecretStr
import structlog

from config.settings import DEFAULT_KUSTO_CLIENT_APP_ID, DEFAULT_REDIRECT_URI, Settings
from services.common.exceptions import ConfigurationError

logger = structlog.get_logger()

# --- Configuration Models ---

class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_format: bool = False

class AuthDefaults(BaseModel):
    """Defaults applied when a connection string leaves them unset."""
    client_app_id: str = DEFAULT_KUSTO_CLIENT_APP_ID
    redirect_uri: str = DEFAULT_REDIRECT_URI
    resource_id: Optional[str] = None

class KustoConfig(BaseModel):
    default_connection: str = "default"
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    auth: AuthDefaults = Field(default_factory=AuthDefaults)

    # Map of profile name -> full connection string
    connections: Dict[str, SecretStr] = Field(default_factory=dict)

    def get_connection_string(self, name: Optional[str] = None) -> str:
        """Return the connection string for a profile, or the default profile."""
        profile = (name or self.default_connection).lower()
        conn = self.connections.get(profile)
        if conn is None:
            raise ConfigurationError(
                f"No connection configured for profile '{profile}'",
                details={"available": sorted(self.connections)}
            )
        return conn.get_secret_value()

# --- Loader Logic ---

class ConfigLoader:
    _instance: Optional[KustoConfig] = None

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> KustoConfig:
        """
        Load configuration from YAML and override with Environment Variables.
        Singleton pattern to avoid reloading.
        """
        if cls._instance:
            return cls._instance

        # Re-read the environment so overrides set after import are honored
        env_settings = Settings()

        if not config_path:
            config_path = env_settings.KUSTO_CONFIG_PATH

        path = Path(config_path)
        if not path.is_absolute():
            path = Path.cwd() / config_path

        config_data = {}
        if path.exists():
            try:
                with open(path, "r") as f:
                    config_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.error("config_load_error", error=str(e), path=str(path))
                raise ConfigurationError(f"Failed to load config file at {path}: {e}")
        else:
            logger.debug("config_file_not_found", path=str(path))

        try:
            config = KustoConfig(**config_data)
        except ValueError as e:
            logger.error("config_validation_error", error=str(e))
            raise ConfigurationError(f"Invalid Configuration: {e}")

        # Profile names are case-insensitive
        config.connections = {name.lower(): conn for name, conn in config.connections.items()}

        # Environment connection strings win over the file
        for name, conn in env_settings.connection_strings.items():
            config.connections[name] = SecretStr(conn)
            logger.debug("connection_loaded_from_env", profile=name)

        explicit = env_settings.model_fields_set
        if "KUSTO_CLIENT_APP_ID" in explicit:
            config.auth.client_app_id = env_settings.KUSTO_CLIENT_APP_ID
        if "KUSTO_REDIRECT_URI" in explicit:
            config.auth.redirect_uri = env_settings.KUSTO_REDIRECT_URI
        if env_settings.KUSTO_RESOURCE_ID:
            config.auth.resource_id = env_settings.KUSTO_RESOURCE_ID
        if "LOG_LEVEL" in explicit:
            config.logging.level = env_settings.LOG_LEVEL
        if "LOG_JSON" in explicit:
            config.logging.json_format = env_settings.LOG_JSON

        if not config.connections:
            logger.warning("no_connections_configured")

        cls._instance = config
        return config

    @classmethod
    def reset(cls) -> None:
        cls._instance = None


def get_config() -> KustoConfig:
    return ConfigLoader.load()
