"""Request and response models for the daemon API."""

from pydantic import BaseModel


class LoadRequest(BaseModel):
    """Start monitoring a bundle (zip or directory) or a page URL."""

    source: str | None = None
    url: str | None = None
    port: int = 9222
    page: int = 0


class ResolveRequest(BaseModel):
    """Check a click destination. Defaults to the latest reported one."""

    url: str | None = None


class ClickResolutionModel(BaseModel):
    url: str
    status: str
    code: int | None = None
    final_url: str | None = None
    error: str | None = None
