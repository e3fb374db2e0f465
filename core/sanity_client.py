"""Async Sanity query client.

Runs GROQ queries against the Sanity HTTP API. Queries are POSTed so large id
lists from a webhook never hit URL length limits.
"""

import logging
import time
from typing import Any, Optional

import httpx

from config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class SanityError(Exception):
    """Raised when the Sanity API rejects a query."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SanityClient:
    """Minimal Sanity client exposing `fetch(query, params)`."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize client with lazy HTTP client creation.

        Args:
            settings: Settings to use (defaults to cached settings).
            http_client: Pre-built HTTP client, mostly for tests.
        """
        self._settings = settings or get_settings()
        self._http = http_client

    @property
    def base_url(self) -> str:
        """Query endpoint base for the configured project."""
        host = "apicdn" if self._settings.sanity_use_cdn else "api"
        return f"https://{self._settings.sanity_project_id}.{host}.sanity.io"

    @property
    def query_path(self) -> str:
        """Path of the query endpoint for the configured dataset."""
        return f"/v{self._settings.sanity_api_version}/data/query/{self._settings.sanity_dataset}"

    def _get_http(self) -> httpx.AsyncClient:
        """Get or create the HTTP client.

        Raises:
            ValueError: If Sanity is not configured.
        """
        if self._http is None:
            if not self._settings.is_sanity_configured():
                raise ValueError(
                    "Sanity not configured. Check SANITY_PROJECT_ID and SANITY_DATASET."
                )
            headers = {"Content-Type": "application/json"}
            if self._settings.sanity_token:
                headers["Authorization"] = f"Bearer {self._settings.sanity_token}"
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self._settings.api_timeout,
            )
        return self._http

    async def fetch(self, query: str, params: Optional[dict] = None) -> Any:
        """Run a GROQ query.

        Args:
            query: GROQ query string.
            params: Query parameters referenced as `$name` in the query.

        Returns:
            The query `result` (a list of documents, ids, or any GROQ value).

        Raises:
            SanityError: If the API answers with an error status.
            httpx.RequestError: On transport failures.
        """
        http = self._get_http()
        start_time = time.time()

        response = await http.post(
            self.query_path,
            json={"query": query, "params": params or {}},
        )
        duration_ms = int((time.time() - start_time) * 1000)

        if response.status_code >= 400:
            message = response.text[:200]
            try:
                error = response.json().get("error", {})
                if isinstance(error, dict):
                    message = error.get("description") or error.get("message") or message
            except ValueError:
                pass
            logger.warning("Sanity query failed with HTTP %d: %s", response.status_code, message)
            raise SanityError(f"HTTP {response.status_code}: {message}", response.status_code)

        logger.debug("Sanity query completed in %dms", duration_ms)
        return response.json().get("result")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
