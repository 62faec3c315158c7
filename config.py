"""
Configuration module for the campus resource booking service.
Loads environment variables and provides typed configuration.
"""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    storage_backend: str = "supabase"  # supabase, memory
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    resource_cache_ttl_seconds: int = 60  # 0 disables resource caching

    # Booking rules
    default_timezone: str = "UTC"  # Used when a resource has no timezone
    check_in_window_minutes: int = 15
    default_cancellation_reason: str = "User cancelled"

    # Access control
    admin_roles: str = "admin"  # Comma-separated role names treated as admin

    # Sweeps
    scheduler_enabled: bool = True
    sweep_interval_minutes: int = 5
    reminder_hours_before: int = 24
    no_show_grace_minutes: int = 15

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    environment: str = "development"  # development, staging, production
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def get_admin_roles(self) -> frozenset:
        """
        Parse the configured admin roles.

        Returns:
            Set of role names that may act on any booking
        """
        if not self.admin_roles:
            return frozenset()
        return frozenset(
            role.strip() for role in self.admin_roles.split(",") if role.strip()
        )

    def is_admin_role(self, role: Optional[str]) -> bool:
        """Check if a role name is one of the admin roles."""
        return bool(role) and role in self.get_admin_roles()

    def validate_all_required(self) -> None:
        """
        Validate that all required settings are present.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        if self.storage_backend not in ("supabase", "memory"):
            raise ValueError(
                f"Unknown storage backend: {self.storage_backend}. "
                f"Use 'supabase' or 'memory'."
            )

        missing = []
        if self.storage_backend == "supabase":
            for field in ("supabase_url", "supabase_key"):
                value = getattr(self, field, None)

                # Check if value is missing or placeholder
                if not value or str(value).lower().startswith("your_"):
                    missing.append(field)

        if self.check_in_window_minutes < 0:
            missing.append("check_in_window_minutes")

        if missing:
            raise ValueError(
                f"Missing or invalid required configuration: "
                f"{', '.join(missing)}. "
                f"Please check your .env file and ensure all required "
                f"values are set."
            )


# Global settings instance
settings = Settings()
