"""Ghost CMS publisher and Admin API client."""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request

import jwt

from autopost.config import GhostConfig
from autopost.errors import PublishError
from autopost.models import PostDraft, PublishedPost
from autopost.publishers.base import BlogPublisher

logger = logging.getLogger(__name__)

_TOKEN_TTL = 5 * 60
_BOUNDARY = "----AutopostUploadBoundary"


class GhostAPIClient:
    """Ghost Admin API client: short-lived JWT auth, HTML posts, image upload."""

    def __init__(self, config: GhostConfig, timeout: int = 20) -> None:
        self.config = config
        self.admin_url = f"{config.url.rstrip('/')}/ghost/api/admin"
        self.timeout = timeout

    def _token(self) -> str:
        key_id, secret = self.config.admin_api_key.split(":")
        now = int(time.time())
        claims = {"iat": now, "exp": now + _TOKEN_TTL, "aud": "/admin/"}
        return jwt.encode(claims, bytes.fromhex(secret), algorithm="HS256", headers={"kid": key_id})

    def _send(self, path: str, body: bytes, content_type: str) -> dict:
        req = urllib.request.Request(
            self.admin_url + path,
            data=body,
            method="POST",
            headers={"Authorization": f"Ghost {self._token()}", "Content-Type": content_type},
        )
        with urllib.request.urlopen(req, timeout=self.timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))

    def upload_image(self, payload: bytes, filename: str = "image.jpg") -> str:
        """Upload a JPEG and return its public URL."""
        body = b"".join(
            [
                f"--{_BOUNDARY}\r\n".encode(),
                f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'.encode(),
                b"Content-Type: image/jpeg\r\n\r\n",
                payload,
                f"\r\n--{_BOUNDARY}--\r\n".encode(),
            ]
        )
        result = self._send("/images/upload/", body, f"multipart/form-data; boundary={_BOUNDARY}")
        return result["images"][0]["url"]

    def create_post(
        self,
        title: str,
        html: str,
        tags: list[str] | None = None,
        status: str = "published",
    ) -> dict:
        """Create a post from HTML.

        Ghost converts the HTML into its own document format when the
        ``source=html`` query parameter is present.
        """
        post: dict = {"title": title, "html": html, "status": status}
        if tags:
            post["tags"] = [{"name": t} for t in tags]
        body = json.dumps({"posts": [post]}).encode("utf-8")
        return self._send("/posts/?source=html", body, "application/json")["posts"][0]


class GhostPublisher(BlogPublisher):
    """Publishes posts to a Ghost site."""

    def __init__(self, config: GhostConfig, timeout: int = 20, client: GhostAPIClient | None = None) -> None:
        self._config = config
        self._client = client or GhostAPIClient(config, timeout=timeout)

    @property
    def platform(self) -> str:
        return "ghost"

    def create_post(self, draft: PostDraft) -> PublishedPost:
        try:
            post = self._client.create_post(
                draft.title,
                draft.html,
                tags=draft.labels,
                status=self._config.status,
            )
        except (
            urllib.error.URLError, TimeoutError, OSError, ValueError, KeyError, IndexError
        ) as exc:
            raise PublishError(f"Ghost API error: {exc}") from exc
        logger.debug("Ghost post created: %s", post.get("url"))
        return PublishedPost(url=post.get("url", ""), post_id=str(post.get("id", "")))
