"""Client for submitting declarative transactions over HTTP.

Transactions are accepted asynchronously by the backend: a successful
submission only returns the id of the accepted transaction. Tracking the
transaction to completion is left to the caller.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cluster_mirror.config import TransactionApiConfig
from cluster_mirror.exceptions import BackendError, ConflictError
from cluster_mirror.manifest import DeclarativeTransaction

_LOGGER = logging.getLogger(__name__)

TRANSACTION_PATH = "/core/transaction/v2"


class TransactionClient:
    """Async client for the declarative transaction endpoint.

    Use as an async context manager so the connection pool is closed:

        async with TransactionClient(config) as client:
            tx_id = await client.submit(tx)
    """

    def __init__(
        self,
        config: TransactionApiConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TransactionClient:
        headers = {"Content-Type": "application/json"}
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        self._client = httpx.AsyncClient(
            base_url=self._config.url,
            headers=headers,
            timeout=self._config.timeout,
            verify=self._config.verify,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json_data: dict[str, Any] | None = None,
        resource: str | None = None,
    ) -> dict[str, Any]:
        """Make a request and decode the JSON response, mapping failures."""
        if not self._client:
            raise RuntimeError(
                "Client not initialized. Use 'async with' context manager."
            )
        _LOGGER.debug("%s %s", method, path)
        try:
            response = await self._client.request(method, path, json=json_data)
        except httpx.HTTPError as err:
            raise BackendError(f"{method} {path} failed: {err}") from err

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}"
            try:
                error_json = response.json()
                message = error_json.get("message") or message
                details = error_json.get("details")
                if details:
                    message = f"{message}: {details}"
            except ValueError:
                if response.text:
                    message = f"{message}: {response.text[:200]}"
            _LOGGER.warning("%s %s failed: %s", method, path, message)
            if response.status_code == httpx.codes.CONFLICT:
                raise ConflictError(resource or path, message)
            raise BackendError(f"{method} {path} failed: {message}")

        if not response.content:
            return {}
        try:
            result = response.json()
        except ValueError as err:
            raise BackendError(f"{method} {path} returned invalid JSON") from err
        return result if isinstance(result, dict) else {}

    async def submit(self, tx: DeclarativeTransaction) -> str:
        """Submit the transaction and return the id assigned by the backend."""
        _LOGGER.info(
            "Submitting transaction '%s' with %d operation(s) (dry_run=%s)",
            tx.description,
            len(tx.operations),
            tx.dry_run,
        )
        result = await self._request(
            "POST", TRANSACTION_PATH, tx.to_request(), resource=tx.description
        )
        if (tx_id := result.get("id")) is None:
            raise BackendError(f"Transaction response missing id: {result}")
        _LOGGER.info("POST %s -> %s", TRANSACTION_PATH, tx_id)
        return str(tx_id)
