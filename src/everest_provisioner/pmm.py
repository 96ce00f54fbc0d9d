"""Client for the PMM server API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from everest_provisioner.utils.errors import PMMError

logger = logging.getLogger(__name__)

API_KEYS_PATH = "/graph/api/auth/keys"
ROLE_ADMIN = "Admin"


class PMMClient:
    """Talks to PMM's Grafana API on behalf of the provisioner."""

    def __init__(
        self,
        endpoint: str,
        username: str = "admin",
        password: str | None = None,
        timeout: float = 5,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._username = username
        self._password = password
        self._timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def create_admin_api_key(self, name: str, token: str | None = None) -> str:
        """Create an Admin API key named ``name`` and return the key.

        Authenticates with ``token`` as a bearer token when given, otherwise
        with the configured username and password.

        Raises:
            PMMError: the request failed or the answer carries no key.
        """
        payload = {"name": name, "role": ROLE_ADMIN}
        headers: dict[str, str] = {}
        auth: httpx.BasicAuth | None = None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            auth = httpx.BasicAuth(self._username, self._password or "")

        url = f"{self._endpoint}{API_KEYS_PATH}"
        logger.info(f"Creating PMM API key {name}")
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                r = client.post(url, json=payload, headers=headers, auth=auth)
            r.raise_for_status()
            body: Any = r.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"PMM API key request failed: {e.response.status_code} {e.response.text[:200]}"
            )
            raise PMMError(
                f"cannot create PMM API key: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise PMMError(f"cannot reach PMM at {self._endpoint}: {e}") from e
        except ValueError as e:
            raise PMMError(f"PMM returned a malformed answer: {e}") from e

        key = body.get("key") if isinstance(body, dict) else None
        if not isinstance(key, str) or not key:
            raise PMMError("PMM answer has no API key")
        return key
