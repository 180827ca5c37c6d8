"""HTTP client for PxWeb navigation, metadata and data endpoints."""

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urljoin

import requests
import structlog
from attrs import define, field

from .catalog import BASE_URL, DEFAULT_LANGUAGE

logger = structlog.get_logger(__name__)


@define(slots=True)
class PxWebHttpClient:
    """Thin JSON wrapper around a PxWeb v1 API."""

    base_url: str = BASE_URL
    language: str = DEFAULT_LANGUAGE
    timeout: float = 60.0
    session: requests.Session = field(factory=requests.Session)
    headers: dict[str, str] = field(
        factory=lambda: {
            "User-Agent": "pxtables",
            "Accept": "application/json",
        },
    )

    def url_for(self, path: str) -> str:
        """Resolve a database/folder/table path against the language root."""
        root = urljoin(self.base_url.rstrip("/") + "/", f"{self.language}/")
        return urljoin(root, quote(path.strip("/"), safe="/"))

    def get_json(self, path: str) -> Any:
        """GET a navigation listing or table metadata document."""
        return self._request("GET", path)

    def post_query(self, path: str, payload: Mapping[str, Any]) -> Any:
        """POST a query payload to a table and return the decoded response."""
        return self._request("POST", path, payload=payload)

    def _request(self, method: str, path: str, *, payload: Mapping[str, Any] | None = None) -> Any:
        url = self.url_for(path)
        log = logger.bind(method=method, url=url)
        log.debug("http.fetch_start", timeout=self.timeout)
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                timeout=self.timeout,
                headers=self.headers,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            log.error("http.fetch_failed", status=status, exc_info=True)
            raise
        log.debug("http.fetch_success", bytes=len(response.content))
        # PxWeb prefixes JSON with a UTF-8 BOM on some deployments.
        response.encoding = "utf-8-sig"
        return response.json()

    def close(self) -> None:
        """Release the underlying HTTP session."""
        self.session.close()
        logger.debug("http.session_closed")


__all__ = ["PxWebHttpClient"]
