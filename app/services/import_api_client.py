"""
Back-office Import API client.
Posts extracted job records and raw talent mail to the import endpoints,
authenticated with a static API key header.
"""

from typing import Any

import httpx

from app.features.mail_triage.domain.models import ImportResult
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

JOBS_IMPORT_PATH = "/api/jobs/import"
TALENTS_IMPORT_PATH = "/api/talents/import"
API_KEY_HEADER = "X-API-Key"


class ImportApiError(Exception):
    """Raised when the Import API client is misconfigured."""

    def __init__(self, message: str, status_code: int | None = None, recoverable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.recoverable = recoverable


class ImportApiClient:
    """
    Client for /api/jobs/import and /api/talents/import.

    Submission failures are returned as ImportResult(success=False) rather
    than raised; the orchestrator decides what a failed submission means.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not base_url:
            raise ImportApiError("IMPORT_API_URL not configured")
        if not api_key:
            raise ImportApiError("IMPORT_API_KEY not configured")

        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            headers={API_KEY_HEADER: api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    async def submit_job(self, payload: dict[str, Any]) -> ImportResult:
        """POST an extracted job record; returns jobId on success."""
        return await self._post(JOBS_IMPORT_PATH, payload, id_field="jobId")

    async def submit_talent(self, payload: dict[str, Any]) -> ImportResult:
        """POST a raw talent mail; returns talentId on success."""
        return await self._post(TALENTS_IMPORT_PATH, payload, id_field="talentId")

    async def _post(self, path: str, payload: dict[str, Any], id_field: str) -> ImportResult:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.error(
                "Import API request failed",
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ImportResult(success=False, error=str(e))

        if response.status_code != 200:
            logger.error(
                "Import API error",
                path=path,
                status_code=response.status_code,
                response_preview=(response.text or "")[:200],
            )
            return ImportResult(success=False, error=f"API returned {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            logger.error("Import API returned non-JSON body", path=path)
            return ImportResult(success=False, error="Invalid response format")

        if not isinstance(data, dict):
            return ImportResult(success=False, error="Invalid response format")

        record_id = data.get(id_field)
        return ImportResult(
            success=data.get("success") is True,
            record_id=str(record_id) if record_id is not None else None,
            error=data.get("error"),
            raw=data,
        )

    async def close(self) -> None:
        await self._client.aclose()
