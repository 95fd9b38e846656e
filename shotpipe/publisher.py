"""Instagram Graph API publishing with upload fallbacks."""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import requests

from .media import MediaError, download_asset
from .models import CandidateItem
from .utils import screenshot_id

logger = logging.getLogger("shotpipe")

GRAPH_API_URL = "https://graph.facebook.com/v18.0"
IMGBB_UPLOAD_URL = "https://api.imgbb.com/1/upload"


class PublishError(Exception):
    """Raised when every publishing strategy failed."""


def _error_message(payload: object) -> str:
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return str(payload["error"].get("message", "Unknown error"))
    return "Unknown error"


class InstagramPublisher:
    """Two-phase media container creation followed by publish."""

    def __init__(
        self,
        access_token: str,
        page_id: str,
        temp_dir: Path = Path("temp"),
        imgbb_api_key: Optional[str] = None,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.access_token = access_token
        self.page_id = page_id
        self.temp_dir = Path(temp_dir)
        self.imgbb_api_key = imgbb_api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def _post(self, path: str, payload: dict) -> dict:
        url = f"{GRAPH_API_URL}/{self.page_id}/{path}"
        try:
            resp = self._session.post(
                url,
                json={**payload, "access_token": self.access_token},
                timeout=self.timeout,
            )
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise PublishError(f"{path} request failed: {exc}") from exc
        if not resp.ok or not isinstance(data, dict) or not data.get("id"):
            raise PublishError(f"{path} failed: {_error_message(data)}")
        return data

    def publish_url(self, image_url: str, caption: str) -> str:
        """Create a media container for ``image_url`` and publish it."""
        container = self._post("media", {"image_url": image_url, "caption": caption})
        logger.info("Media container %s created, publishing...", container["id"])
        published = self._post("media_publish", {"creation_id": container["id"]})
        return str(published["id"])

    def _host_processed_copy(self, item: CandidateItem) -> str:
        if not self.imgbb_api_key:
            raise PublishError("IMGBB_API_KEY is not configured")
        name = screenshot_id(item.detail_url) or "screenshot"
        try:
            path = download_asset(item.media_url, self.temp_dir, name, session=self._session)
        except MediaError as exc:
            raise PublishError(str(exc)) from exc
        try:
            resp = self._session.post(
                IMGBB_UPLOAD_URL,
                data={
                    "key": self.imgbb_api_key,
                    "image": base64.b64encode(path.read_bytes()).decode("ascii"),
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return str(resp.json()["data"]["url"])
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            raise PublishError(f"ImgBB upload failed: {exc}") from exc
        finally:
            path.unlink(missing_ok=True)

    def publish(self, item: CandidateItem, caption: str) -> str:
        """Try each upload strategy in turn and return the published id."""
        strategies: List[Tuple[str, Callable[[], str]]] = [
            ("direct", lambda: item.media_url),
            ("processed", lambda: self._host_processed_copy(item)),
            ("original", lambda: item.media_url.split("?")[0]),
        ]
        last_error: Optional[Exception] = None
        for name, resolve_url in strategies:
            if name == "processed" and not self.imgbb_api_key:
                continue
            try:
                published_id = self.publish_url(resolve_url(), caption)
            except PublishError as exc:
                logger.warning("Upload strategy %s failed: %s", name, exc)
                last_error = exc
                continue
            logger.info("Upload strategy %s succeeded", name)
            return published_id
        raise PublishError(f"All upload strategies failed. Last error: {last_error}")

    def close(self) -> None:
        self._session.close()
