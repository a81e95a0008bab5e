# Overview: HTTP client for the remote per-entity collection API (PostgREST style).

"""
Remote Gateway

One collection per entity type under <base>/rest/v1/:

    GET  /<entity>?tenant_id=eq.<uuid>          -> list of rows
    POST /<entity>?on_conflict=uuid             -> insert-or-overwrite by uuid
         Prefer: resolution=merge-duplicates
    GET  /tenants?license_key=eq.<key>&limit=1  -> activation lookup

Authentication is a static key sent both as `apikey` and as a bearer token.
Every transport failure and non-2xx answer surfaces as RemoteError; the
caller decides whether it is fatal. Timeouts are httpx's defaults.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

BODY_EXCERPT = 300


class RemoteError(Exception):
    """Transport failure or non-2xx response from the remote API."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return base
        return f"{base} (HTTP {self.status_code})"


class RemoteGateway:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        transport: httpx.BaseTransport | None = None,
    ):
        if not base_url:
            raise RemoteError("Remote URL is not configured")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=f"{self.base_url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            transport=transport,
        )

    @classmethod
    def from_config(cls, config) -> "RemoteGateway":
        return cls(
            config.get("SYNCPOS_REMOTE_URL", ""),
            config.get("SYNCPOS_REMOTE_API_KEY", ""),
            transport=config.get("SYNCPOS_REMOTE_TRANSPORT"),
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RemoteGateway":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise RemoteError(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            body = response.text[:BODY_EXCERPT]
            logger.warning("%s %s -> %s: %s", method, path, response.status_code, body)
            raise RemoteError(f"{method} {path} rejected", status_code=response.status_code, body=body)
        return response

    def _json(self, response: httpx.Response, what: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(f"Malformed JSON from {what}", status_code=response.status_code) from exc

    def fetch_all(self, entity: str, tenant_id: str) -> list[dict]:
        response = self._request("GET", f"/{entity}", params={"tenant_id": f"eq.{tenant_id}"})
        rows = self._json(response, entity)
        if not isinstance(rows, list):
            raise RemoteError(f"Expected a list from {entity}", status_code=response.status_code)
        return rows

    def upsert(self, entity: str, payload: dict) -> None:
        self._request(
            "POST",
            f"/{entity}",
            params={"on_conflict": "uuid"},
            json=payload,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def get_tenant_by_license(self, license_key: str) -> dict | None:
        response = self._request(
            "GET",
            "/tenants",
            params={"license_key": f"eq.{license_key}", "limit": "1"},
        )
        rows = self._json(response, "tenants")
        if isinstance(rows, dict):
            return rows
        if not rows:
            return None
        return rows[0]
