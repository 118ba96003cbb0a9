"""Application configuration sourced from the environment."""

import os
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables
load_dotenv()

SESSION_ID_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
SESSION_ID_LENGTH = 8


class LiveKitSettings(BaseModel):
    """Credentials and endpoints of the media server."""

    api_key: str = "devkey"
    api_secret: str = "devsecret"
    url: str = "ws://localhost:7880"
    http_url: str = "http://localhost:7881"
    timeout: float = 10.0


class StorageSettings(BaseModel):
    """S3 compatible bucket the egress service uploads recordings to."""

    access_key: str | None = None
    secret_key: str | None = None
    bucket: str | None = None
    endpoint: str | None = None
    region: str = "us-east-1"
    public_url: str | None = None

    @property
    def missing(self) -> list[str]:
        """Environment variables that still need a value."""
        required = {
            "R2_ACCESS_KEY": self.access_key,
            "R2_SECRET_KEY": self.secret_key,
            "R2_BUCKET": self.bucket,
            "R2_ENDPOINT": self.endpoint,
        }
        return [name for name, value in required.items() if not value]

    @property
    def is_configured(self) -> bool:
        return not self.missing

    @property
    def upload_region(self) -> str:
        # S3 clients reject "auto"
        return "us-east-1" if self.region in ("", "auto") else self.region

    def public_url_for(self, key: str) -> str | None:
        """Best-effort public URL of an uploaded object."""
        if self.public_url:
            return f"{self.public_url.rstrip('/')}/{key}"
        if self.bucket and self.endpoint:
            host = urlparse(self.endpoint).netloc or self.endpoint.split("/")[0]
            return f"https://{self.bucket}.{host}/{key}"
        return None


class ServerSettings(BaseModel):
    webhook_secret: str = "dev-webhook-secret"
    api_key: str | None = None
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


class SessionSettings(BaseModel):
    id_length: int = SESSION_ID_LENGTH
    id_chars: str = SESSION_ID_CHARS
    ttl_seconds: int = 86400
    sweep_interval: float = 3600.0


class RecordingSettings(BaseModel):
    file_format: str = Field(default="ogg", pattern="^(ogg|mp4)$")
    path_prefix: str = "audios"
    start_delay: float = 2.0
    retention_limit: int = 10000


class Settings(BaseModel):
    """Top level settings object handed to every service."""

    livekit: LiveKitSettings = Field(default_factory=LiveKitSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    recording: RecordingSettings = Field(default_factory=RecordingSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""
        return cls(
            livekit=LiveKitSettings(
                api_key=os.getenv("LIVEKIT_API_KEY", "devkey"),
                api_secret=os.getenv("LIVEKIT_API_SECRET", "devsecret"),
                url=os.getenv("LIVEKIT_URL", "ws://localhost:7880"),
                http_url=os.getenv("LIVEKIT_HTTP_URL", "http://localhost:7881"),
                timeout=float(os.getenv("LIVEKIT_TIMEOUT", "10")),
            ),
            storage=StorageSettings(
                access_key=os.getenv("R2_ACCESS_KEY") or None,
                secret_key=os.getenv("R2_SECRET_KEY") or None,
                bucket=os.getenv("R2_BUCKET") or None,
                endpoint=os.getenv("R2_ENDPOINT") or None,
                region=os.getenv("R2_REGION", "us-east-1"),
                public_url=os.getenv("R2_PUBLIC_URL") or None,
            ),
            server=ServerSettings(
                webhook_secret=os.getenv("WEBHOOK_SECRET", "dev-webhook-secret"),
                api_key=os.getenv("API_KEY") or None,
                environment=os.getenv("APP_ENV", "development"),
            ),
            session=SessionSettings(
                ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", "86400")),
                sweep_interval=float(os.getenv("SESSION_SWEEP_INTERVAL", "3600")),
            ),
            recording=RecordingSettings(
                file_format=os.getenv("RECORDING_FORMAT", "ogg").lower(),
                path_prefix=os.getenv("RECORDING_PATH_PREFIX", "audios"),
                start_delay=float(os.getenv("RECORDING_START_DELAY", "2.0")),
                retention_limit=int(os.getenv("RECORDING_RETENTION_LIMIT", "10000")),
            ),
        )
