"""Unified configuration loaded from .autopost.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from autopost.errors import ConfigError
from autopost.models import Credential, RunMode, SelectionMode

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".autopost.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG = Path.home() / ".config" / "autopost" / "config.toml"


class FeedsConfig(BaseModel):
    """[feeds] section."""

    urls: list[str] = Field(default_factory=list)
    feeds_file: str = ""
    opml_file: str = ""
    max_items_per_feed: int = 50
    selection_mode: SelectionMode = SelectionMode.ALL_IN_FEED_ORDER

    @property
    def is_configured(self) -> bool:
        return bool(self.urls or self.feeds_file or self.opml_file)


class StoreConfig(BaseModel):
    """[store] section."""

    db_path: str = "./data/posts.db"
    url: str = ""
    busy_timeout_ms: int = 5000

    @property
    def resolved_url(self) -> str:
        """SQLAlchemy URL for the ledger database."""
        if self.url:
            return self.url
        return f"sqlite:///{Path(self.db_path).expanduser()}"


class LLMConfig(BaseModel):
    """[llm] section — the text rewrite provider."""

    api_keys: list[str] = Field(default_factory=list)
    model: str = "haiku"
    timeout: int = 60
    max_tokens: int = 2200
    language: str = "English"
    target_word_count: int = 800

    def credentials(self) -> list[Credential]:
        """Distinct configured keys, in configuration order."""
        seen: set[str] = set()
        creds: list[Credential] = []
        for index, key in enumerate(self.api_keys, start=1):
            key = key.strip()
            if key and key not in seen:
                seen.add(key)
                creds.append(Credential(secret=key, label=f"key-{index}"))
        return creds


class EnrichConfig(BaseModel):
    """[enrich] section — article page fetching."""

    always_fetch: bool = True
    min_words: int = 100


class ImagesConfig(BaseModel):
    """[images] section — lead image branding and re-hosting."""

    brand: bool = False
    host: str = "imgur"
    logo_path: str = "assets/logo.png"
    cover_box: str = ""
    logo_scale: float = 0.25
    logo_opacity: float = 0.85
    margin: int = 20
    jpeg_quality: int = 90

    def cover_box_coords(self) -> tuple[int, int, int, int] | None:
        """Parse ``cover_box`` ("x,y,width,height") into integers.

        Raises:
            ConfigError: If the value is set but not four integers.
        """
        if not self.cover_box.strip():
            return None
        parts = [p.strip() for p in self.cover_box.split(",")]
        try:
            coords = tuple(int(p) for p in parts)
        except ValueError as exc:
            raise ConfigError(
                f"Invalid images.cover_box {self.cover_box!r}: expected 'x,y,width,height'"
            ) from exc
        if len(coords) != 4:
            raise ConfigError(
                f"Invalid images.cover_box {self.cover_box!r}: expected 'x,y,width,height'"
            )
        return coords  # type: ignore[return-value]


class ImgurConfig(BaseModel):
    """[imgur] section."""

    client_id: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id)


class BloggerConfig(BaseModel):
    """[blogger] section — OAuth2 refresh-token credentials."""

    blog_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""
    is_draft: bool = False

    @property
    def is_configured(self) -> bool:
        return bool(self.blog_id and self.client_id and self.client_secret and self.refresh_token)


class GhostConfig(BaseModel):
    """[ghost] section."""

    url: str = ""
    admin_api_key: str = ""
    status: str = "published"

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.admin_api_key)


class PublishConfig(BaseModel):
    """[publish] section."""

    platform: str = "blogger"
    timeout: int = 20


class PipelineConfig(BaseModel):
    """[pipeline] section."""

    image_required: bool = True
    max_items_per_run: int = 3
    pace_seconds: float = 2.0


class ScheduleConfig(BaseModel):
    """[schedule] section."""

    mode: RunMode = RunMode.ONCE
    cron: str = "0 * * * *"
    timezone: str = "UTC"


class HttpConfig(BaseModel):
    """[http] section."""

    user_agent: str = "autopost/0.3 (+rss autoposter)"
    timeout: int = 15


class AutopostConfig(BaseModel):
    """Top-level configuration model for the autopost pipeline."""

    feeds: FeedsConfig = Field(default_factory=FeedsConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    enrich: EnrichConfig = Field(default_factory=EnrichConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    imgur: ImgurConfig = Field(default_factory=ImgurConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    blogger: BloggerConfig = Field(default_factory=BloggerConfig)
    ghost: GhostConfig = Field(default_factory=GhostConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)


def load_config(path: str | Path | None = None) -> AutopostConfig:
    """Load configuration from a TOML file, then overlay environment variables.

    Search order:
    1. Explicit path (if provided)
    2. .autopost.toml in CWD
    3. ~/.config/autopost/config.toml

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged AutopostConfig.

    Raises:
        ConfigError: If a value fails validation.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG.exists():
            data = _load_toml(GLOBAL_CONFIG)
            logger.info("Loaded config from %s", GLOBAL_CONFIG)

    try:
        config = AutopostConfig.model_validate(data) if data else AutopostConfig()
        return _apply_env_vars(config)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def merge_cli_overrides(config: AutopostConfig, **cli_kwargs: object) -> AutopostConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "mode": ("schedule", "mode"),
        "max_items": ("pipeline", "max_items_per_run"),
        "db_path": ("store", "db_path"),
        "platform": ("publish", "platform"),
        "pace_seconds": ("pipeline", "pace_seconds"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    try:
        return AutopostConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid command-line override: {exc}") from exc


def validate_for_run(config: AutopostConfig) -> None:
    """Fail fast on configuration a run cannot proceed without.

    Raises:
        ConfigError: Listing every problem found.
    """
    problems: list[str] = []

    if not config.feeds.is_configured:
        problems.append("no feeds configured (feeds.urls / FEED_URLS)")
    if not config.llm.credentials():
        problems.append("no LLM API key configured (llm.api_keys / ANTHROPIC_API_KEYS)")

    platform = config.publish.platform
    if platform == "blogger":
        if not config.blogger.is_configured:
            problems.append(
                "Blogger OAuth config missing (BLOG_ID/CLIENT_ID/CLIENT_SECRET/REFRESH_TOKEN)"
            )
    elif platform == "ghost":
        if not config.ghost.is_configured:
            problems.append("Ghost config missing (GHOST_URL/GHOST_ADMIN_API_KEY)")
    else:
        problems.append(f"unknown publish.platform {platform!r}")

    if config.images.brand:
        if not Path(config.images.logo_path).expanduser().exists():
            problems.append(f"logo not found at {config.images.logo_path}")
        if config.images.host == "imgur" and not config.imgur.is_configured:
            problems.append("IMGUR_CLIENT_ID is required to host branded images")
        elif config.images.host == "ghost" and not config.ghost.is_configured:
            problems.append("Ghost config is required to host branded images")
        elif config.images.host not in ("imgur", "ghost"):
            problems.append(f"unknown images.host {config.images.host!r}")
        try:
            config.images.cover_box_coords()
        except ConfigError as exc:
            problems.append(str(exc))

    if problems:
        raise ConfigError("; ".join(problems))


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _split_list(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _apply_env_vars(config: AutopostConfig) -> AutopostConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "DB_PATH": ("store", "db_path"),
        "DATABASE_URL": ("store", "url"),
        "ANTHROPIC_MODEL": ("llm", "model"),
        "POST_LANGUAGE": ("llm", "language"),
        "MAX_ITEMS_PER_RUN": ("pipeline", "max_items_per_run"),
        "PACE_SECONDS": ("pipeline", "pace_seconds"),
        "POST_INTERVAL_CRON": ("schedule", "cron"),
        "MODE": ("schedule", "mode"),
        "USER_AGENT": ("http", "user_agent"),
        "PUBLISH_PLATFORM": ("publish", "platform"),
        "BLOG_ID": ("blogger", "blog_id"),
        "CLIENT_ID": ("blogger", "client_id"),
        "CLIENT_SECRET": ("blogger", "client_secret"),
        "REFRESH_TOKEN": ("blogger", "refresh_token"),
        "GHOST_URL": ("ghost", "url"),
        "GHOST_ADMIN_API_KEY": ("ghost", "admin_api_key"),
        "IMGUR_CLIENT_ID": ("imgur", "client_id"),
        "LOGO_PATH": ("images", "logo_path"),
        "SOURCE_LOGO_COORDS": ("images", "cover_box"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value.strip()

    if "MODE" in os.environ:
        data["schedule"]["mode"] = os.environ["MODE"].strip().lower()

    feeds_raw = os.environ.get("FEED_URLS")
    if feeds_raw is not None:
        data["feeds"]["urls"] = _split_list(feeds_raw)

    selection_raw = os.environ.get("SELECTION_MODE")
    if selection_raw is not None:
        data["feeds"]["selection_mode"] = selection_raw.strip().lower()

    # Multiple keys win over the single-key variable; both may be set.
    keys: list[str] = list(data["llm"]["api_keys"])
    multi_raw = os.environ.get("ANTHROPIC_API_KEYS")
    if multi_raw is not None:
        keys = _split_list(multi_raw)
    single = os.environ.get("ANTHROPIC_API_KEY", "").strip()
    if single and single not in keys:
        keys.append(single)
    data["llm"]["api_keys"] = keys

    brand_raw = os.environ.get("BRAND_IMAGES")
    if brand_raw is not None:
        data["images"]["brand"] = brand_raw.lower() in ("true", "1", "yes")

    return AutopostConfig.model_validate(data)
