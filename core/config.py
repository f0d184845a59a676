import os
import logging
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Curated Piped API mirrors; override with PIPED_INSTANCES=a,b,c
DEFAULT_PIPED_INSTANCES = (
    "https://pipedapi.kavin.rocks",
    "https://pipedapi.tokhmi.xyz",
    "https://pipedapi.moomoo.me",
    "https://pipedapi.syncpundit.io",
    "https://api-piped.mha.fi",
    "https://pipedapi.rivo.lol",
    "https://pipedapi.leptons.xyz",
    "https://piped-api.lunar.icu",
    "https://pipedapi.colinslegacy.com",
    "https://yapi.vyper.me",
    "https://api.looleh.xyz",
    "https://pipedapi-libre.kavin.rocks",
    "https://pa.mint.lgbt",
    "https://pa.il.ax",
    "https://pipedapi.qdi.fi",
)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logging.warning(f"[config] {name}={raw!r} is not an integer, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logging.warning(f"[config] {name}={raw!r} is not a number, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    items = tuple(i.strip().rstrip("/") for i in raw.split(",") if i.strip())
    return items or default


@dataclass(frozen=True)
class Settings:
    discord_token: str | None = None
    command_prefix: str = "!"
    log_level: str = "INFO"

    spotify_client_id: str | None = None
    spotify_client_secret: str | None = None

    # extraction
    extraction_backend: str = "piped"  # piped | ytdlp
    fallback_search: str = "ytdlp"  # ytdlp | none
    piped_instances: tuple[str, ...] = field(default=DEFAULT_PIPED_INSTANCES)
    ytdlp_executable: str = "yt-dlp"
    cookie_file: str | None = None

    # resolver
    max_candidates: int = 10
    extraction_retries: int = 2
    endpoint_attempts: int = 3
    retry_backoff: float = 1.0
    retry_backoff_max: float = 8.0
    search_timeout: float = 10.0
    stream_timeout: float = 15.0
    resolution_timeout: float = 30.0
    url_search_fallback: bool = False
    locator_max_age: float = 900.0

    # sessions
    connect_timeout: float = 30.0
    reconnect_timeout: float = 5.0
    inactivity_timeout: float = 300.0
    max_queue_size: int = 100

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            discord_token=os.getenv("DISCORD_TOKEN"),
            command_prefix=os.getenv("COMMAND_PREFIX", "!"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            spotify_client_id=os.getenv("SPOTIPY_CLIENT_ID"),
            spotify_client_secret=os.getenv("SPOTIPY_CLIENT_SECRET"),
            extraction_backend=os.getenv("EXTRACTION_BACKEND", "piped").lower(),
            fallback_search=os.getenv("FALLBACK_SEARCH", "ytdlp").lower(),
            piped_instances=_env_list("PIPED_INSTANCES", DEFAULT_PIPED_INSTANCES),
            ytdlp_executable=os.getenv("YTDLP_EXECUTABLE", "yt-dlp"),
            cookie_file=os.getenv("YTDLP_COOKIE_FILE") or None,
            max_candidates=_env_int("MAX_CANDIDATES", 10),
            extraction_retries=_env_int("EXTRACTION_RETRIES", 2),
            endpoint_attempts=_env_int("ENDPOINT_ATTEMPTS", 3),
            retry_backoff=_env_float("RETRY_BACKOFF", 1.0),
            retry_backoff_max=_env_float("RETRY_BACKOFF_MAX", 8.0),
            search_timeout=_env_float("SEARCH_TIMEOUT", 10.0),
            stream_timeout=_env_float("STREAM_TIMEOUT", 15.0),
            resolution_timeout=_env_float("RESOLUTION_TIMEOUT", 30.0),
            url_search_fallback=_env_bool("URL_SEARCH_FALLBACK", False),
            locator_max_age=_env_float("LOCATOR_MAX_AGE", 900.0),
            connect_timeout=_env_float("CONNECT_TIMEOUT", 30.0),
            reconnect_timeout=_env_float("RECONNECT_TIMEOUT", 5.0),
            inactivity_timeout=_env_float("INACTIVITY_TIMEOUT", 300.0),
            max_queue_size=_env_int("MAX_QUEUE_SIZE", 100),
        )

    @property
    def spotify_enabled(self) -> bool:
        return bool(self.spotify_client_id and self.spotify_client_secret)

    def masked_token(self) -> str:
        token = self.discord_token
        return token[:6] + "…" + token[-6:] if token else "None"
