"""One posting run: select, caption, publish and record."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from .cache import SourceCrawlCache
from .captions import (
    CAPTION_PROVIDERS,
    CaptionHistory,
    GeminiCaptionWriter,
    StaticCaptionWriter,
    build_hashtags,
)
from .config import DEFAULT_AI_MODELS, PipelineConfig
from .fetching import PageFetcher
from .ledger import Ledger, LedgerError, open_ledger
from .models import CandidateItem
from .publisher import InstagramPublisher, PublishError
from .selector import Selector

logger = logging.getLogger("shotpipe")


class CaptionWriter(Protocol):
    def write(self, item: CandidateItem) -> str: ...


class Publisher(Protocol):
    def publish(self, item: CandidateItem, caption: str) -> str: ...


@dataclass
class PostResult:
    """Outcome of a successful posting run."""

    detail_url: str
    published_id: str
    caption: str


def build_caption_writer(config: PipelineConfig, history: CaptionHistory) -> CaptionWriter:
    static = StaticCaptionWriter(history, variety=config.caption_variety)
    wants_ai = config.enable_ai_captions or config.enable_vision_analysis
    if not wants_ai or not config.ai_api_key:
        return static
    fallback = static if config.fallback_to_static else None
    writer_cls = CAPTION_PROVIDERS[config.ai_provider]
    if writer_cls is GeminiCaptionWriter:
        return GeminiCaptionWriter(
            config.ai_api_key,
            history,
            fallback=fallback,
            model=config.ai_model,
            use_vision=config.enable_vision_analysis,
        )
    return writer_cls(config.ai_api_key, history, fallback=fallback, model=config.ai_model)


class Pipeline:
    """Wires the selector to the caption and publish collaborators."""

    def __init__(
        self,
        config: PipelineConfig,
        ledger: Ledger,
        selector: Selector,
        caption_writer: CaptionWriter,
        publisher: Optional[Publisher],
        history: CaptionHistory,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.selector = selector
        self.caption_writer = caption_writer
        self.publisher = publisher
        self.history = history
        self._run_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "Pipeline":
        """Build a pipeline with the real network collaborators."""
        ledger = open_ledger(config)
        history = CaptionHistory.load(config.caption_history_path)
        fetcher = PageFetcher(max_retries=config.max_retries, timeout=config.request_timeout)
        selector = Selector(
            fetcher,
            ledger,
            SourceCrawlCache(),
            batch_size=config.batch_size,
            batch_delay=config.batch_delay,
            source_delay=config.source_delay,
            page_delay=config.page_delay,
        )
        publisher = None
        if config.instagram_token and config.page_id:
            publisher = InstagramPublisher(
                config.instagram_token,
                config.page_id,
                temp_dir=config.temp_dir,
                imgbb_api_key=config.imgbb_api_key,
            )
        return cls(
            config,
            ledger,
            selector,
            build_caption_writer(config, history),
            publisher,
            history,
        )

    @property
    def cache(self) -> SourceCrawlCache:
        return self.selector.cache

    def compose_caption(self, item: CandidateItem) -> str:
        text = self.caption_writer.write(item)
        hashtags = build_hashtags(item, max_hashtags=self.config.max_hashtags)
        return f"{text}\n\n{' '.join(hashtags)}"

    def record(self, identifier: str) -> bool:
        """Add ``identifier`` to the ledger and persist; False if the write failed."""
        self.ledger.add(identifier)
        try:
            self.ledger.persist()
        except LedgerError as exc:
            logger.error(
                "Could not persist history (%s); %s may be posted again", exc, identifier
            )
            return False
        return True

    async def post_once(self) -> Optional[PostResult]:
        """Run one posting cycle; overlapping calls are skipped."""
        if self._run_lock.locked():
            logger.warning("A posting run is already in progress; skipping")
            return None
        async with self._run_lock:
            if self.publisher is None:
                raise PublishError("Publishing credentials are not configured")
            item = await self.selector.select_next(self.config.source_ids)
            if item is None:
                logger.warning("No suitable screenshots found for posting")
                return None

            caption = await asyncio.to_thread(self.compose_caption, item)
            logger.debug("Caption preview: %.100s", caption)
            try:
                published_id = await asyncio.to_thread(self.publisher.publish, item, caption)
            except PublishError as exc:
                logger.error("Error posting %s: %s", item.detail_url, exc)
                return None

            self.record(item.detail_url)
            self.history.save(self.config.caption_history_path)
            logger.info("Posted %s as %s", item.detail_url, published_id)
            return PostResult(item.detail_url, published_id, caption)

    def status(self) -> Dict[str, Any]:
        return {
            "posted_count": len(self.ledger),
            "cache_size": len(self.cache),
            "sources": len(self.config.source_ids),
            "schedule": self.config.schedule,
            "batch_size": self.config.batch_size,
            "max_retries": self.config.max_retries,
            "ledger_backend": "database" if self.config.database_url else "file",
            "vision_analysis_enabled": self.config.enable_vision_analysis,
            "ai_captions_enabled": self.config.enable_ai_captions,
            "ai_provider": self.config.ai_provider,
            "ai_model": self.config.ai_model or DEFAULT_AI_MODELS.get(self.config.ai_provider),
            "caption_variety": self.config.caption_variety,
            "caption_patterns_tracked": len(self.history),
        }

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Cache cleared")

    def reset_history(self) -> None:
        self.ledger.reset()
        logger.info("Posted history reset")

    def reset_captions(self) -> None:
        self.history.reset()
        self.history.save(self.config.caption_history_path)
        logger.info("Caption history reset")

    def close(self) -> None:
        self.selector.fetcher.close()
        for collaborator in (self.caption_writer, self.publisher):
            close = getattr(collaborator, "close", None)
            if close is not None:
                close()
