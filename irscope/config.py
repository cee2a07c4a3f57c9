"""
IRScope Taste Configuration

Environment-based configuration for the taste engine and its CLI.
"""
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _app_version_from_package() -> str:
    """Read version from installed package metadata."""
    try:
        from importlib.metadata import version
        return version("irscope-taste")
    except Exception:
        pass
    # Fallback: parse pyproject.toml directly (dev / non-installed mode)
    try:
        import re
        pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
        match = re.search(r'^version\s*=\s*"([^"]+)"', pyproject.read_text(), re.MULTILINE)
        if match:
            return match.group(1)
    except Exception:
        pass
    return "0.0.0-unknown"


# Storage keys. The live and sandbox documents are independent namespaces;
# the training-mode flag is a plain boolean passthrough.
LIVE_STORAGE_KEY = "irscope.taste.v2"
SANDBOX_STORAGE_KEY = "irscope.taste.sandbox.v2"
TRAINING_MODE_KEY = "irscope.trainingMode"
SANDBOX_MODE_KEY = "irscope.sandboxMode"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "IRScope Taste"
    app_version: str = _app_version_from_package()
    debug: bool = False

    # Directory holding one JSON file per storage key
    storage_dir: Path = Path.home() / ".irscope"

    live_storage_key: str = LIVE_STORAGE_KEY
    sandbox_storage_key: str = SANDBOX_STORAGE_KEY
    training_mode_key: str = TRAINING_MODE_KEY
    sandbox_mode_key: str = SANDBOX_MODE_KEY

    @model_validator(mode="after")
    def _warn_shared_namespace(self) -> "Settings":
        """Warn when live and sandbox point at the same document."""
        if self.live_storage_key == self.sandbox_storage_key:
            logging.getLogger(__name__).warning(
                "IRSCOPE_LIVE_STORAGE_KEY equals IRSCOPE_SANDBOX_STORAGE_KEY; "
                "sandbox learning will write straight into the live store."
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="IRSCOPE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience access
settings = get_settings()
