"""
HTTP origin client for JSON content APIs.
"""

from typing import Any, Dict, Optional

import httpx

from shared.errors import ExternalServiceError
from shared.logging import get_logger


class HttpOriginClient:
    """Thin JSON client for one external content service."""

    def __init__(
        self,
        service: str,
        base_url: str,
        *,
        timeout: float = 15.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.service = service
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.headers = headers or {}
        self.logger = get_logger(f"content.origin.{service}")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """GET ``path`` and decode JSON; ``None`` on 404."""
        return await self._request("GET", path, params=params)

    async def post_json(self, path: str, payload: Dict[str, Any]) -> Optional[Any]:
        """POST a JSON body to ``path`` and decode the JSON reply; ``None`` on 404."""
        return await self._request("POST", path, json=payload)

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]:
        try:
            response = await self._get_client().request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            self.logger.error("Origin request error", method=method, path=path, error=str(exc))
            raise ExternalServiceError(
                service=self.service,
                message=str(exc),
                details={"path": path, "params": params}
            )

        if response.status_code == 200:
            self.logger.debug("Origin content retrieved", method=method, path=path)
            return response.json()

        if response.status_code == 404:
            self.logger.info("Origin content not found", path=path, params=params)
            return None

        self.logger.error(
            "Origin request failed",
            method=method,
            path=path,
            params=params,
            status_code=response.status_code,
        )
        raise ExternalServiceError(
            service=self.service,
            message=f"Unexpected status {response.status_code}",
            details={"status_code": response.status_code, "body": response.text}
        )
