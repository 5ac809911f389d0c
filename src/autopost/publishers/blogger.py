"""Blogger publisher using the Blogger v3 API via google-api-python-client."""

from __future__ import annotations

import logging

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from autopost.config import BloggerConfig
from autopost.errors import PublishError
from autopost.models import PostDraft, PublishedPost
from autopost.publishers.base import BlogPublisher

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
BLOGGER_SCOPES = ["https://www.googleapis.com/auth/blogger"]


class BloggerAPIClient:
    """Blogger v3 service authorized with a stored OAuth refresh token.

    google-auth exchanges the refresh token for an access token on the
    first request and again whenever it expires.
    """

    def __init__(self, config: BloggerConfig, timeout: int = 20) -> None:
        self.config = config
        self.timeout = timeout
        self._service = None

    def credentials(self) -> Credentials:
        return Credentials(
            None,
            refresh_token=self.config.refresh_token,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            token_uri=TOKEN_URI,
            scopes=BLOGGER_SCOPES,
        )

    def service(self):
        """Build the discovery client once and reuse it."""
        if self._service is None:
            http = AuthorizedHttp(self.credentials(), http=httplib2.Http(timeout=self.timeout))
            self._service = build("blogger", "v3", http=http, cache_discovery=False)
        return self._service

    def insert_post(self, title: str, html: str, labels: list[str] | None = None) -> dict:
        """Insert a post and return the API's post resource."""
        body: dict = {"kind": "blogger#post", "title": title, "content": html}
        if labels:
            body["labels"] = labels
        request = self.service().posts().insert(
            blogId=self.config.blog_id, body=body, isDraft=self.config.is_draft
        )
        return request.execute()


class BloggerPublisher(BlogPublisher):
    """Publishes posts to a Blogger blog."""

    def __init__(
        self, config: BloggerConfig, timeout: int = 20, client: BloggerAPIClient | None = None
    ) -> None:
        self._client = client or BloggerAPIClient(config, timeout=timeout)

    @property
    def platform(self) -> str:
        return "blogger"

    def create_post(self, draft: PostDraft) -> PublishedPost:
        try:
            post = self._client.insert_post(draft.title, draft.html, labels=draft.labels)
        except HttpError as exc:
            detail = exc.content.decode("utf-8", errors="replace")[:300]
            raise PublishError(f"Blogger API error {exc.resp.status}: {detail}") from exc
        except GoogleAuthError as exc:
            raise PublishError(f"Blogger OAuth failed: {exc}") from exc
        except (httplib2.HttpLib2Error, TimeoutError, OSError) as exc:
            raise PublishError(f"Blogger API error: {exc}") from exc
        logger.debug("Blogger post %s created", post.get("id"))
        return PublishedPost(url=post.get("url", ""), post_id=str(post.get("id", "")))
