"""Configuration objects and constants for the screenshot pipeline."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger("shotpipe")

DEFAULT_SCHEDULE = "0 12 * * *"
DEFAULT_AI_PROVIDER = "gemini"
DEFAULT_AI_MODELS = {
    "gemini": "gemini-2.5-flash",
    "openai": "gpt-3.5-turbo",
    "anthropic": "claude-3-haiku-20240307",
}
DEFAULT_HEALTH_PORT = 3000
PROFILE_BASE_URL = "https://steamcommunity.com/profiles"
COLLECTION_PATH = "screenshots"
DETAIL_BASE_URL = "https://steamcommunity.com/sharedfiles/filedetails/?id="

# The listing surface returns different subsets depending on these parameters.
VIEW_DESCRIPTORS = (
    "",
    "?tab=all",
    "?tab=public",
    "?appid=0",
    "?p=1&sort=newestfirst",
    "?p=1&sort=oldestfirst",
    "?p=1&sort=mostrecent",
    "?p=1&view=grid",
    "?p=1&view=list",
    "?p=1&appid=0&sort=newestfirst",
    "?p=1&appid=0&sort=oldestfirst",
    "?p=1&browsefilter=myfiles",
)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

CACHE_TTL_SECONDS = 3600.0
PAGE_SIZE = 30
MIN_PAGES = 10
PAGE_SAFETY_MARGIN = 10
FALLBACK_SCREENSHOT_COUNT = 1000
EMPTY_PAGE_LIMIT = 3

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigError(Exception):
    """Raised when required settings are missing or invalid."""


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class PipelineConfig:
    """Top-level settings that control crawling, captioning and publishing."""

    source_ids: List[str] = field(default_factory=list)
    instagram_token: Optional[str] = None
    page_id: Optional[str] = None
    schedule: str = DEFAULT_SCHEDULE
    batch_size: int = 45
    max_retries: int = 3
    request_timeout: float = 30.0
    page_delay: float = 1.0
    batch_delay: float = 2.0
    source_delay: float = 3.0
    database_url: Optional[str] = None
    history_path: Path = Path("posted_history.json")
    caption_history_path: Path = Path("caption_history.json")
    temp_dir: Path = Path("temp")
    gemini_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    imgbb_api_key: Optional[str] = None
    ai_provider: str = DEFAULT_AI_PROVIDER
    ai_model: Optional[str] = None
    enable_ai_captions: bool = True
    enable_vision_analysis: bool = True
    fallback_to_static: bool = True
    caption_variety: str = "high"
    max_hashtags: int = 30
    health_port: int = DEFAULT_HEALTH_PORT

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        """Build a config from environment variables, reading ``.env`` first."""
        if env is None:
            load_dotenv()
            env = os.environ
        sources = [
            token.strip()
            for token in env.get("STEAM_USER_IDS", "").split(",")
            if token.strip()
        ]
        provider = (env.get("AI_PROVIDER") or DEFAULT_AI_PROVIDER).lower()
        return cls(
            source_ids=sources,
            instagram_token=env.get("INSTAGRAM_ACCESS_TOKEN") or None,
            page_id=env.get("INSTAGRAM_PAGE_ID") or None,
            schedule=env.get("POSTING_SCHEDULE") or DEFAULT_SCHEDULE,
            batch_size=_parse_int(env, "BATCH_SIZE", 45),
            max_retries=_parse_int(env, "MAX_RETRIES", 3),
            database_url=env.get("DATABASE_URL") or None,
            history_path=Path(env.get("HISTORY_PATH") or "posted_history.json"),
            caption_history_path=Path(
                env.get("CAPTION_HISTORY_PATH") or "caption_history.json"
            ),
            temp_dir=Path(env.get("TEMP_DIR") or "temp"),
            gemini_api_key=env.get("GEMINI_API_KEY") or None,
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            imgbb_api_key=env.get("IMGBB_API_KEY") or None,
            ai_provider=provider,
            ai_model=env.get("AI_MODEL") or DEFAULT_AI_MODELS.get(provider),
            enable_ai_captions=_parse_bool(env.get("ENABLE_AI_CAPTIONS"), True),
            enable_vision_analysis=_parse_bool(env.get("ENABLE_VISION_ANALYSIS"), True),
            fallback_to_static=_parse_bool(env.get("FALLBACK_TO_STATIC"), True),
            caption_variety=(env.get("CAPTION_VARIETY") or "high").lower(),
            health_port=_parse_int(env, "PORT", DEFAULT_HEALTH_PORT),
        )

    @property
    def ai_api_key(self) -> Optional[str]:
        """Key for the configured caption provider."""
        return {
            "gemini": self.gemini_api_key,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }.get(self.ai_provider)

    def validate(self, require_publishing: bool = True) -> None:
        """Raise ``ConfigError`` describing every missing required value."""
        errors: List[str] = []
        if require_publishing:
            if not self.instagram_token:
                errors.append("INSTAGRAM_ACCESS_TOKEN is required")
            if not self.page_id:
                errors.append("INSTAGRAM_PAGE_ID is required")
        if not self.source_ids:
            errors.append("STEAM_USER_IDS must contain at least one Steam ID")
        if self.batch_size < 1:
            errors.append("BATCH_SIZE must be positive")
        if self.max_retries < 1:
            errors.append("MAX_RETRIES must be positive")
        if self.caption_variety not in {"low", "medium", "high"}:
            errors.append("CAPTION_VARIETY must be one of low, medium, high")
        if self.ai_provider not in DEFAULT_AI_MODELS:
            errors.append("AI_PROVIDER must be one of " + ", ".join(DEFAULT_AI_MODELS))
        if errors:
            raise ConfigError("; ".join(errors))

        key_name = f"{self.ai_provider.upper()}_API_KEY"
        if self.enable_vision_analysis and self.ai_provider != "gemini":
            logger.warning(
                "Vision analysis is only supported with gemini; %s captions use text prompts",
                self.ai_provider,
            )
        if (self.enable_ai_captions or self.enable_vision_analysis) and not self.ai_api_key:
            logger.warning(
                "AI captions enabled but %s is not set; captions will fall back to templates",
                key_name,
            )
