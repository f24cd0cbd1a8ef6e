"""HTTP client for the VideoFramer backend API."""

import mimetypes
from pathlib import Path
from typing import Any

import httpx

from framer_client.config import API_BASE_URL, REQUEST_TIMEOUT, TRANSFER_TIMEOUT
from framer_client.errors import ApiError, ApiValidationError, NotFoundError, RateLimitedError


def _error_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def raise_for_api_error(resp: httpx.Response) -> None:
    """Map non-2xx responses onto the client error taxonomy."""
    if resp.is_success:
        return
    body = _error_body(resp)
    message = body.get("error") or resp.text or f"HTTP {resp.status_code}"
    code = body.get("code")

    if resp.status_code == 400:
        raise ApiValidationError(message, status_code=400, code=code)
    if resp.status_code == 404:
        raise NotFoundError(message, status_code=404, code=code)
    if resp.status_code == 429:
        retry_after = body.get("retryAfterSeconds")
        if retry_after is None:
            retry_after = int(resp.headers.get("Retry-After", "0") or 0)
        raise RateLimitedError(message, retry_after_seconds=int(retry_after), remaining=int(body.get("remaining", 0)))
    raise ApiError(message, status_code=resp.status_code, code=code)


class FramerApiClient:
    """Thin async wrapper over the job and artifact endpoints.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        """Create an async HTTP client for one call."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self.transport,
        )

    async def _get_json(self, path: str) -> dict:
        async with self._client() as client:
            resp = await client.get(path)
            raise_for_api_error(resp)
            return resp.json()

    async def _post_json(self, path: str, payload: dict) -> dict:
        async with self._client() as client:
            resp = await client.post(path, json=payload)
            raise_for_api_error(resp)
            return resp.json()

    async def _get_bytes(self, path: str) -> bytes:
        async with self._client(timeout=TRANSFER_TIMEOUT) as client:
            resp = await client.get(path)
            raise_for_api_error(resp)
            return resp.content

    # Acquisition

    async def acquire(self, url: str) -> str:
        """Start fetching a remote video; returns the acquisition job id."""
        data = await self._post_json("/api/acquire", {"url": url})
        return data["jobId"]

    async def upload(self, file_path: str | Path, content_type: str | None = None) -> str:
        """Upload a local video; returns an already-completed acquisition job id."""
        path = Path(file_path)
        mime_type = content_type or mimetypes.guess_type(str(path))[0] or "application/octet-stream"
        with open(path, "rb") as f:
            async with self._client(timeout=TRANSFER_TIMEOUT) as client:
                resp = await client.post("/api/upload", files={"video": (path.name, f, mime_type)})
                raise_for_api_error(resp)
                return resp.json()["jobId"]

    async def acquisition_status(self, job_id: str) -> dict:
        return await self._get_json(f"/api/acquisition-status/{job_id}")

    async def fetch_artifact(self, job_id: str) -> bytes:
        return await self._get_bytes(f"/api/artifact/{job_id}")

    # Overlays

    async def list_overlays(self) -> list[dict]:
        data = await self._get_json("/api/overlays")
        return data.get("overlays", [])

    # Transform

    async def transform(self, acquisition_job_id: str, overlay_id: str) -> str:
        """Start compositing an overlay; returns the transform job id."""
        data = await self._post_json(
            "/api/transform",
            {"acquisitionJobId": acquisition_job_id, "overlayId": overlay_id},
        )
        return data["jobId"]

    async def transform_status(self, job_id: str) -> dict:
        return await self._get_json(f"/api/transform-status/{job_id}")

    async def fetch_transformed_artifact(self, job_id: str) -> bytes:
        return await self._get_bytes(f"/api/transformed-artifact/{job_id}")

    async def health(self) -> dict:
        return await self._get_json("/api/health")
