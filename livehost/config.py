"""Configuration settings for the live host pipeline"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Server
    host: str = "0.0.0.0"
    port: int = 8010
    debug: bool = False

    # Gemini
    gemini_api_keys: str = ""  # comma separated, rotated round-robin
    answer_model: str = "gemini-3-flash-preview"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    max_retries: int = 3
    retry_backoff_seconds: List[float] = [2.0, 5.0, 10.0]
    vision_jpeg_quality: int = 60

    # Driver cadence
    capture_interval_seconds: float = 1.2
    cycle_interval_seconds: float = 1.0
    backlog_retry_seconds: float = 0.1
    product_highlight_seconds: float = 10.0

    # Flow control
    batch_size: int = 8
    max_audio_backlog: int = 2
    recent_chat_limit: int = 50
    log_limit: int = 200
    proactive_enabled: bool = True
    proactive_interval_seconds: float = 20.0  # minimum silence between unsolicited comments

    # Screen capture
    capture_monitor: int = 1
    capture_fps: int = 15
    display_width: int = 1280  # surface the regions are drawn against
    display_height: int = 720
    min_crop_size: int = 10
    chat_region: List[int] = [400, 300, 250, 300]
    vision_region: List[int] = [50, 50, 300, 300]

    # OCR
    ocr_languages: str = "ind+eng"
    ocr_char_whitelist: str = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ:? .!,@#()_-"
    ocr_min_confidence: float = 50.0
    contrast_min_range: float = 30.0
    binarize_threshold: float = 150.0
    cluster_gap_factor: float = 1.5
    cluster_max_x_offset: float = 300.0
    author_max_length: int = 25
    colon_author_max_length: int = 20
    dedup_window_seconds: float = 15.0
    dedup_evict_after_seconds: float = 60.0
    dedup_table_limit: int = 500

    # Audio
    audio_enabled: bool = True
    tts_sample_rate: int = 24000

    # Host defaults
    host_gender: str = "female"
    host_personality: str = "enthusiast"
    seller_mode: bool = True
    host_role_description: str = ""
    host_username: str = ""
    gift_detection_enabled: bool = False
    host_vision_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
    )

    def api_keys(self) -> List[str]:
        """Configured Gemini keys, blanks removed"""
        return [k.strip() for k in self.gemini_api_keys.split(",") if k.strip()]


settings = Settings()
