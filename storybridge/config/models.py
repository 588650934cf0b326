from __future__ import annotations
from pydantic import BaseModel, Field


class ConnectorConfig(BaseModel):
    """Settings for the Shortcut connector."""

    connector_id: str = "shortcut"
    base_url: str = "https://api.app.shortcut.com/api/v3"   # "mock" → demo data
    auth_header: str = "Shortcut-Token"
    help_url: str = "https://help.shortcut.com/hc/en-us/articles/205701199"

    # Search endpoint page size. Shortcut caps this at 25.
    page_size: int = Field(default=25, ge=1, le=25)
    timeout_s: float = Field(default=10.0, gt=0)


class GatewayConfig(BaseModel):
    """Process-level settings for the HTTP gateway."""

    connector: ConnectorConfig = Field(default_factory=ConnectorConfig)

    # "" disables Redis; credentials then live in process memory (dev only).
    redis_url: str = ""
    credential_ttl_s: int = 30 * 24 * 3600

    host: str = "0.0.0.0"
    port: int = 8002
