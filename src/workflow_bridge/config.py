"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables. All settings use the BRIDGE_ prefix:

- BRIDGE_HOST, BRIDGE_PORT, BRIDGE_LOG_LEVEL control the HTTP server
- BRIDGE_JWT_SECRET_KEY verifies caller tokens
- BRIDGE_ENGINE_* point the Execution Bridge at the workflow engine
- BRIDGE_PROFILES_FILE and BRIDGE_CATALOG_FILE locate the profile records and
  an optional catalog override

Locally, you can set them via environment variables or a .env file.
"""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Bridge configuration with environment variable bindings.

    Each field maps to an environment variable with the BRIDGE_ prefix.
    For example, `engine_base_url` reads from BRIDGE_ENGINE_BASE_URL.
    List fields (`admin_roles`, `catalog_viewer_roles`) are read as JSON,
    e.g. BRIDGE_ADMIN_ROLES='["admin"]'.
    """

    # --- Server settings ---

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"

    # --- Authentication settings ---

    # Default is for local development only.
    jwt_secret_key: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"

    # --- Workflow engine settings ---

    # Base URL of the automation engine. Catalog endpoints are appended to it,
    # so it carries no trailing slash.
    engine_base_url: str = "http://localhost:5678"

    # Seconds before an engine call is reported as "not responding".
    engine_timeout: float = 30.0

    # Sent as `engine_api_key_header` when set.
    engine_api_key: str | None = None
    engine_api_key_header: str = "X-N8N-API-KEY"

    # When enabled, arguments that fail the workflow's parameter schema are
    # rejected instead of being forwarded with a warning.
    strict_parameters: bool = False

    # --- Catalog and profile settings ---

    # JSON file of profile records (the lookup-by-identity source).
    profiles_file: Path = Path("profiles.json")

    # Optional JSON file replacing the built-in workflow catalog.
    catalog_file: Path | None = None

    # Roles allowed to clear the tool cache.
    admin_roles: list[str] = ["admin"]

    # Roles allowed to list every workflow definition.
    catalog_viewer_roles: list[str] = ["admin", "ceo"]

    model_config = {
        "env_prefix": "BRIDGE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Singleton instance: import this from other modules.
settings = Settings()
