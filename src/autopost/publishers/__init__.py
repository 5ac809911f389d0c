"""Blog publishers — Blogger and Ghost."""

from __future__ import annotations

from typing import TYPE_CHECKING

from autopost.publishers.base import BlogPublisher

if TYPE_CHECKING:
    from autopost.config import AutopostConfig


def create_publisher(config: AutopostConfig) -> BlogPublisher:
    """Create the publisher selected by ``publish.platform``.

    Raises:
        ValueError: If the platform is unknown.
    """
    from autopost.publishers.blogger import BloggerPublisher
    from autopost.publishers.ghost import GhostPublisher

    platform = config.publish.platform
    if platform == "blogger":
        return BloggerPublisher(config.blogger, timeout=config.publish.timeout)
    if platform == "ghost":
        return GhostPublisher(config.ghost, timeout=config.publish.timeout)

    raise ValueError(f"Unknown publisher: {platform!r}")


__all__ = ["BlogPublisher", "create_publisher"]
