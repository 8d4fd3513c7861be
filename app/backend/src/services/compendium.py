"""Client for the Hyrule Compendium API, the source of exported rows."""

from __future__ import annotations

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from app.backend.src.core.errors import UpstreamError

LOGGER = structlog.get_logger(__name__)


class Monster(BaseModel):
    """One compendium entry; the fields map 1:1 onto report columns."""

    id: int
    name: str
    description: str = ""
    common_locations: list[str] | None = None
    drops: list[str] | None = None
    category: str = ""
    image: str = ""
    dlc: bool = False


class _MonsterResponse(BaseModel):
    data: list[Monster] = Field(default_factory=list)


class CompendiumClient:
    """Fetch monster rows over HTTP.

    ``httpx.Client`` is thread-safe, so one instance is shared by every worker.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def fetch_rows(self, timeout: float | None = None) -> list[Monster]:
        """Return every monster, bounding the request by ``timeout`` seconds."""

        url = f"{self.base_url}/category/monsters"
        effective_timeout = self.timeout if timeout is None else min(timeout, self.timeout)
        try:
            response = self._client.get(url, timeout=effective_timeout)
        except httpx.HTTPError as exc:
            LOGGER.warning("compendium_request_failed", url=url, error=str(exc))
            raise UpstreamError(f"failed to fetch monsters: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            LOGGER.warning(
                "compendium_unexpected_status", url=url, status_code=response.status_code
            )
            raise UpstreamError(f"unexpected status code: {response.status_code}")

        try:
            payload = _MonsterResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise UpstreamError(f"failed to decode response: {exc.error_count()} error(s)") from exc

        LOGGER.info("compendium_rows_fetched", count=len(payload.data))
        return payload.data

    def close(self) -> None:
        self._client.close()


__all__ = ["CompendiumClient", "Monster"]
