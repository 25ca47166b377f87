"""Unified settings for bodyparser."""

import tempfile
import tomllib
from pathlib import Path
from typing import ClassVar

from pydantic_settings import BaseSettings, SettingsConfigDict


def read_pyproject(pyproject_path: Path) -> dict:
    """Read pyproject.toml into a dict, empty when the file is not shipped."""
    if not pyproject_path.is_file():
        return {}
    with pyproject_path.open("rb") as file_handle:
        return tomllib.load(file_handle)


def get_version() -> str:
    """Get version from package metadata."""
    try:
        import importlib.metadata

        return importlib.metadata.version("bodyparser")
    except Exception:
        return "0.0.0"


class Settings(BaseSettings):
    """Unified settings for the bodyparser engine and its demo service."""

    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # ClassVar to prevent Pydantic from trying to load from env
    BASE_DIR: ClassVar[Path] = Path(__file__).parent.parent.parent
    PROJECT: ClassVar[dict] = read_pyproject(BASE_DIR / "pyproject.toml")
    API_NAME: ClassVar[str] = PROJECT.get("project", {}).get("name", "bodyparser")
    API_VERSION: ClassVar[str] = get_version()

    # Server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Uploads
    UPLOAD_TMP_DIR: Path = Path(tempfile.gettempdir())
    UPLOAD_NAMESPACE: str | None = None

    # Tokenizer tuning
    HIGH_WATER_MARK: int = 1024
    FILE_HWM: int = 1024
    DEFAULT_CHARSET: str = "utf-8"
    PRESERVE_PATH: bool = False

    # Limits (0 disables a size ceiling, None disables a count)
    MAX_FIELD_NAME_SIZE: int = 255
    MAX_FIELD_SIZE: int = 10 * 1024 * 1024
    MAX_FIELDS: int | None = 200
    MAX_FILE_SIZE: int = 10 * 1024 * 1024
    MAX_FILES: int | None = 10
    MAX_PARTS: int | None = None
    MAX_BODY_SIZE: int | None = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()  # type: ignore
