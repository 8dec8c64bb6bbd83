"""
Base configuration settings
"""

import os
from typing import List, Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Base settings configuration"""

    # Application settings
    APP_NAME: str = "ShoulderCheck"
    VERSION: str = "0.3.0"
    DEBUG: bool = False

    # API settings
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    ALLOWED_HOSTS_STR: str = "localhost,127.0.0.1"

    # OpenAI settings (question/diagnosis generation and speech)
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    OPENAI_TIMEOUT_SECONDS: float = 60.0
    TTS_MODEL: str = "tts-1"
    TTS_VOICE: str = "alloy"

    # Camera settings
    CAMERA_INDEX: int = 0
    FRAME_WIDTH: int = 640
    FRAME_HEIGHT: int = 480
    PREVIEW_JPEG_QUALITY: int = 80

    # Pose estimation settings
    POSE_BACKEND: str = "mediapipe"
    POSE_MODEL_PATH: str = "./models/pose_landmarker_lite.task"
    POSE_MIN_DETECTION_CONFIDENCE: float = 0.5
    POSE_MIN_TRACKING_CONFIDENCE: float = 0.5

    # Capture / measurement settings
    NOMINAL_FPS: int = 30
    CONFIDENCE_THRESHOLD: float = 0.5
    FRAME_INSET: float = 0.05
    REPROMPT_INTERVAL_SECONDS: float = 15.0
    SESSION_TTL_SECONDS: float = 1800.0

    # Trimming settings
    DURATION_MAX_RETRIES: int = 8
    DURATION_INITIAL_BACKOFF_SECONDS: float = 0.25
    DURATION_TIMEOUT_SECONDS: float = 10.0
    THUMBNAIL_COUNT: int = 20
    THUMBNAIL_STRIP_SIZE_STR: str = "640,64"

    # Storage settings
    RECORDINGS_DIR: str = "./recordings"
    RECORDING_FOURCC: str = "mp4v"

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "shouldercheck.log"

    @property
    def ALLOWED_HOSTS(self) -> List[str]:
        """Parse allowed hosts from string"""
        hosts_str = os.getenv('ALLOWED_HOSTS', self.ALLOWED_HOSTS_STR)
        return [host.strip() for host in hosts_str.split(',')]

    @property
    def FRAME_SIZE(self) -> tuple:
        """Capture frame size as (width, height)"""
        return (self.FRAME_WIDTH, self.FRAME_HEIGHT)

    @property
    def THUMBNAIL_STRIP_SIZE(self) -> tuple:
        """Parse thumbnail strip size from string"""
        width, height = [int(part.strip()) for part in self.THUMBNAIL_STRIP_SIZE_STR.split(',')]
        return (width, height)

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"  # Ignore extra fields from .env
    }


# Create settings instance
settings = Settings()
