"""
Production environment configuration
"""

from shouldercheck.config.base import Settings


class ProductionSettings(Settings):
    """Production-specific settings"""

    DEBUG: bool = False
    LOG_LEVEL: str = "WARNING"

    # Production security
    ALLOWED_HOSTS_STR: str = "shouldercheck.app,api.shouldercheck.app"

    # Full-size landmarker in production
    POSE_MODEL_PATH: str = "/opt/shouldercheck/models/pose_landmarker_full.task"

    # Strict timeouts for production
    OPENAI_TIMEOUT_SECONDS: float = 30.0
    DURATION_TIMEOUT_SECONDS: float = 8.0

    RECORDINGS_DIR: str = "/var/lib/shouldercheck/recordings"

    model_config = {
        "env_file": ".env.production",
        "case_sensitive": True,
        "extra": "ignore"
    }


# Production settings instance
prod_settings = ProductionSettings()
