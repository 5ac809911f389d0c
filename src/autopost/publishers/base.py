"""Base class for blog publishers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from autopost.models import PostDraft, PublishedPost


class BlogPublisher(ABC):
    """Creates a post on a blog platform."""

    @property
    @abstractmethod
    def platform(self) -> str:
        """Platform name used in logs and config (``"blogger"``, ``"ghost"``)."""

    @abstractmethod
    def create_post(self, draft: PostDraft) -> PublishedPost:
        """Create the post and return where it lives.

        Raises:
            PublishError: On any failure talking to the platform.
        """
