"""
SparePartsClient -- HTTP client for the separate spare-parts inventory service.

Responsibility:
    Implements ``ExternalStockGateway`` over ``httpx``.  Every response is
    an envelope ``{"success": bool, "message": str, "data": ...}``; a
    transport error, a non-2xx status, or ``success: false`` raises
    ExternalServiceFailureError.

Architecture position:
    Services layer (outer).  The kernel sees only the gateway protocol.

Failure modes:
    - ExternalServiceFailureError for every unsuccessful call.  Whether
      that failure matters is the caller's decision: the mutation engine
      logs it and keeps the local write.
"""

from __future__ import annotations

from typing import Any

import httpx

from stock_kernel.exceptions import ExternalServiceFailureError
from stock_kernel.logging_config import get_logger

logger = get_logger("services.spare_parts_client")

SERVICE_NAME = "spare-parts"
_INVENTORY_PATH = "/api/v1/spare-part-inventory"


class SparePartsClient:
    """
    Synchronous client for the spare-parts service.

    ``transport`` lets tests inject ``httpx.MockTransport``.  The client
    owns its ``httpx.Client`` and must be closed (or used as a context
    manager).
    """

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if api_token:
            token = api_token if api_token.startswith("Bearer ") else f"Bearer {api_token}"
            headers["Authorization"] = token
        self._http = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> SparePartsClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def get_part(self, part_id: int) -> dict[str, Any]:
        """Catalog record for a spare part."""
        data = self._call("GET", f"/spare-parts/{part_id}", operation="get_part")
        if not isinstance(data, dict):
            raise ExternalServiceFailureError(
                SERVICE_NAME, "get_part", f"unexpected payload for part {part_id}"
            )
        return data

    def add_stock(self, part_id: int, quantity: int, notes: str) -> None:
        self._call(
            "POST",
            f"{_INVENTORY_PATH}/{part_id}/add-stock",
            params={"quantity": quantity, "notes": notes},
            operation="add_stock",
        )

    def remove_stock(self, part_id: int, quantity: int, notes: str) -> None:
        self._call(
            "POST",
            f"{_INVENTORY_PATH}/{part_id}/remove-stock",
            params={"quantity": quantity, "notes": notes},
            operation="remove_stock",
        )

    def has_sufficient_stock(self, part_id: int, quantity: int) -> bool:
        data = self._call(
            "GET",
            f"{_INVENTORY_PATH}/{part_id}/has-sufficient-stock",
            params={"requiredQuantity": quantity},
            operation="has_sufficient_stock",
        )
        return bool(data)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _call(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = self._http.request(method, path, params=params)
            response.raise_for_status()
            envelope = response.json()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceFailureError(
                SERVICE_NAME, operation, f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceFailureError(SERVICE_NAME, operation, str(exc)) from exc
        except ValueError as exc:
            raise ExternalServiceFailureError(
                SERVICE_NAME, operation, "response body is not JSON"
            ) from exc

        if not isinstance(envelope, dict) or not envelope.get("success"):
            message = envelope.get("message") if isinstance(envelope, dict) else None
            raise ExternalServiceFailureError(
                SERVICE_NAME, operation, message or "service reported failure"
            )

        logger.debug(
            "spare_parts_call_succeeded",
            extra={"operation": operation, "path": path},
        )
        return envelope.get("data")
