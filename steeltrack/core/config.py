"""
SteelTrack Configuration
Core settings for the SteelTrack inventory API
"""
from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="STEELTRACK_",
        case_sensitive=True,
        extra="ignore",
    )

    # Application Info
    APP_NAME: str = "SteelTrack Inventory API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./data/steel_track.db"
    SQL_ECHO: bool = False

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 8 * 60

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Field encryption
    KDF_ITERATIONS: int = 100_000
    KEY_MATERIAL_LENGTH: int = 32
    KEY_PAD_CHAR: str = "0"
    SALT_SIZE: int = 16
    NONCE_SIZE: int = 12
    CIPHERTEXT_TAG: str = "enc:v1:"
    LEGACY_CIPHERTEXT_DETECTION: bool = True
    LEGACY_CIPHERTEXT_MIN_LENGTH: int = 50

    # Uploads
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "steeltrack.log"
    ERROR_LOG_FILE: str = "error.log"

    # Quantity precision
    QUANTITY_DECIMAL_PLACES: int = 2
    THICKNESS_DECIMAL_PLACES: int = 2

    # API Configuration
    API_V1_STR: str = "/api/v1"
    DOCS_URL: str = "/docs"

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("KEY_PAD_CHAR")
    @classmethod
    def validate_pad_char(cls, v):
        if len(v) != 1:
            raise ValueError("KEY_PAD_CHAR must be a single character")
        return v

    @field_validator("KDF_ITERATIONS")
    @classmethod
    def validate_iterations(cls, v):
        if v < 1:
            raise ValueError("KDF_ITERATIONS must be positive")
        return v


# Create global settings instance
settings = Settings()
