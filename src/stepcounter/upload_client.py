"""HTTP client for the remote step-estimation service.

The service receives one batch of vertical accelerations per request and
answers with the number of steps it detected in that window.

Request::

    POST <endpoint>
    Content-Type: application/json

    {"verticalAccelerations": [...], "time": 10.24,
     "samplingFrequency": 100, "fftSize": 1024, "name": "pixel-7"}

Response (2xx)::

    {"steps": 14}

A missing or malformed ``steps`` field is read as zero steps.  Transport
failures and non-2xx answers raise, and the caller drops the batch.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from src.stepcounter.base import (
    Batch,
    ProtocolError,
    TransportError,
    UploadRequest,
    UploadResponse,
)

logger = logging.getLogger("stridesync.stepcounter.upload")

_DEFAULT_TIMEOUT_S = 10.0


class UploadClient:
    """Posts significant batches to the step-estimation service."""

    def __init__(
        self,
        endpoint: str | None = None,
        sampling_frequency_hz: int = 100,
        batch_size: int = 1024,
        device_label: str = "stride-sync",
        timeout_seconds: float = _DEFAULT_TIMEOUT_S,
        success_status: range = range(200, 300),
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            endpoint:              Service URL (UPLOAD_ENDPOINT env var if omitted).
            sampling_frequency_hz: Reported in every request.
            batch_size:            Buffer capacity, reported as ``fftSize``.
            device_label:          Reported as ``name``.
            timeout_seconds:       Per-request timeout.
            success_status:        Status codes treated as success.
            http_client:           Optional pre-configured httpx client (for testing).
        """
        self._endpoint = endpoint or os.environ.get("UPLOAD_ENDPOINT", "")
        if not self._endpoint:
            raise ValueError("UploadClient requires an endpoint URL")
        self._sampling_frequency_hz = sampling_frequency_hz
        self._batch_size = batch_size
        self._device_label = device_label
        self._timeout = timeout_seconds
        self._success_status = success_status
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def build_request(self, batch: Batch, elapsed_seconds: float) -> UploadRequest:
        return UploadRequest(
            batch=batch,
            elapsed_seconds=elapsed_seconds,
            sampling_frequency_hz=self._sampling_frequency_hz,
            batch_size=self._batch_size,
            device_label=self._device_label,
        )

    async def upload(self, batch: Batch, elapsed_seconds: float) -> int:
        """Send one batch and return the step delta reported by the service.

        Args:
            batch:           A significant batch.
            elapsed_seconds: Seconds covered by this batch since the previous flush.

        Returns:
            Steps detected in the batch (>= 0).

        Raises:
            TransportError: On connection, timeout, redirect or body decoding failures.
            ProtocolError:  On a non-success HTTP status.
        """
        request = self.build_request(batch, elapsed_seconds)
        response = await self._post(request.to_wire())

        if response.status_code not in self._success_status:
            raise ProtocolError(response.status_code)

        parsed = self.parse_response(response)
        logger.debug(
            "Batch #%d uploaded (%.2fs) → %d steps",
            batch.sequence,
            elapsed_seconds,
            parsed.steps_delta,
        )
        return parsed.steps_delta

    @staticmethod
    def parse_response(response: httpx.Response) -> UploadResponse:
        """Extract the step delta from a success response.

        Anything other than a JSON object with a non-negative integer ``steps``
        field yields a zero delta.
        """
        try:
            body = response.json()
        except ValueError as exc:
            logger.warning("Unparseable step service response: %s", exc)
            return UploadResponse()
        return UploadResponse(steps_delta=_steps_from_body(body))

    async def _post(self, body: dict) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        try:
            if self._http_client:
                return await self._http_client.post(
                    self._endpoint, json=body, headers=headers, timeout=self._timeout
                )
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.post(self._endpoint, json=body, headers=headers)
        except httpx.RequestError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc


def _steps_from_body(body: Any) -> int:
    if not isinstance(body, dict):
        logger.warning("Step service response is not an object: %r", body)
        return 0
    if "steps" not in body:
        return 0

    value = body["steps"]
    if isinstance(value, bool):
        logger.warning("Ignoring boolean steps value: %r", value)
        return 0
    try:
        steps = int(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning("Ignoring non-numeric steps value: %r", value)
        return 0
    if isinstance(value, float) and value != steps:
        logger.warning("Ignoring fractional steps value: %r", value)
        return 0
    if steps < 0:
        logger.warning("Ignoring negative steps value: %d", steps)
        return 0
    return steps
