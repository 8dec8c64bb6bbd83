"""
Development environment configuration
"""

from shouldercheck.config.base import Settings


class DevelopmentSettings(Settings):
    """Development-specific settings"""

    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"

    # Development-friendly CORS
    ALLOWED_HOSTS_STR: str = "localhost,127.0.0.1,localhost:3000,127.0.0.1:3000"

    # Relaxed trimming timeouts for slow local disks
    DURATION_TIMEOUT_SECONDS: float = 20.0

    # Keep development recordings apart
    RECORDINGS_DIR: str = "./recordings-dev"

    model_config = {
        "env_file": ".env.development",
        "case_sensitive": True,
        "extra": "ignore"
    }


# Development settings instance
dev_settings = DevelopmentSettings()
