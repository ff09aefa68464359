"""Tests for the step-estimation service client (mocked HTTP)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.stepcounter.base import Batch, ProtocolError, TransportError, UploadRequest
from src.stepcounter.tests.conftest import TEST_CAPACITY, TEST_ENDPOINT
from src.stepcounter.upload_client import UploadClient


def _response(status: int = 200, body=None, json_error: Exception | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    if json_error is not None:
        response.json = MagicMock(side_effect=json_error)
    else:
        response.json = MagicMock(return_value=body)
    return response


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


class TestUploadRequestWire:
    def test_wire_body_fields(self, walking_batch: Batch) -> None:
        request = UploadRequest(
            batch=walking_batch,
            elapsed_seconds=10.24,
            sampling_frequency_hz=100,
            batch_size=TEST_CAPACITY,
            device_label="test-phone",
        )
        body = request.to_wire()
        assert body == {
            "verticalAccelerations": list(walking_batch.samples),
            "time": 10.24,
            "samplingFrequency": 100,
            "fftSize": TEST_CAPACITY,
            "name": "test-phone",
        }

    def test_acceleration_list_length_matches_fft_size(self, walking_batch: Batch) -> None:
        body = UploadRequest(walking_batch, 1.0, 100, TEST_CAPACITY, "x").to_wire()
        assert len(body["verticalAccelerations"]) == body["fftSize"]

    def test_build_request_uses_client_metadata(
        self, upload_client: UploadClient, walking_batch: Batch
    ) -> None:
        request = upload_client.build_request(walking_batch, 3.5)
        assert request.sampling_frequency_hz == 100
        assert request.batch_size == TEST_CAPACITY
        assert request.device_label == "test-phone"
        assert request.elapsed_seconds == 3.5


# ---------------------------------------------------------------------------
# HTTP exchange
# ---------------------------------------------------------------------------


class TestUploadClientHTTP:
    @pytest.mark.asyncio
    async def test_posts_json_to_endpoint(
        self,
        upload_client: UploadClient,
        mock_httpx_client: MagicMock,
        walking_batch: Batch,
    ) -> None:
        await upload_client.upload(walking_batch, 10.24)

        mock_httpx_client.post.assert_called_once()
        args, kwargs = mock_httpx_client.post.call_args
        assert args[0] == TEST_ENDPOINT
        assert kwargs["headers"]["Content-Type"] == "application/json"
        assert kwargs["json"]["time"] == 10.24
        assert kwargs["json"]["name"] == "test-phone"

    @pytest.mark.asyncio
    async def test_steps_field_returned(
        self, upload_client: UploadClient, walking_batch: Batch
    ) -> None:
        assert await upload_client.upload(walking_batch, 1.0) == 7

    @pytest.mark.asyncio
    async def test_empty_object_means_zero_steps(
        self,
        upload_client: UploadClient,
        mock_httpx_client: MagicMock,
        walking_batch: Batch,
    ) -> None:
        mock_httpx_client.post = AsyncMock(return_value=_response(200, {}))
        assert await upload_client.upload(walking_batch, 1.0) == 0

    @pytest.mark.asyncio
    async def test_unparseable_body_means_zero_steps(
        self,
        upload_client: UploadClient,
        mock_httpx_client: MagicMock,
        walking_batch: Batch,
    ) -> None:
        mock_httpx_client.post = AsyncMock(
            return_value=_response(200, json_error=ValueError("Expecting value"))
        )
        assert await upload_client.upload(walking_batch, 1.0) == 0

    @pytest.mark.asyncio
    async def test_other_2xx_is_success(
        self,
        upload_client: UploadClient,
        mock_httpx_client: MagicMock,
        walking_batch: Batch,
    ) -> None:
        mock_httpx_client.post = AsyncMock(return_value=_response(201, {"steps": 3}))
        assert await upload_client.upload(walking_batch, 1.0) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    async def test_non_success_status_raises_protocol_error(
        self,
        status: int,
        upload_client: UploadClient,
        mock_httpx_client: MagicMock,
        walking_batch: Batch,
    ) -> None:
        mock_httpx_client.post = AsyncMock(return_value=_response(status, {"steps": 9}))
        with pytest.raises(ProtocolError) as exc_info:
            await upload_client.upload(walking_batch, 1.0)
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectError("connection refused"), httpx.ReadTimeout("timed out")],
    )
    async def test_transport_failure_raises_transport_error(
        self,
        error: Exception,
        upload_client: UploadClient,
        mock_httpx_client: MagicMock,
        walking_batch: Batch,
    ) -> None:
        mock_httpx_client.post = AsyncMock(side_effect=error)
        with pytest.raises(TransportError):
            await upload_client.upload(walking_batch, 1.0)

    def test_endpoint_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("UPLOAD_ENDPOINT", raising=False)
        with pytest.raises(ValueError):
            UploadClient(endpoint=None)

    def test_endpoint_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UPLOAD_ENDPOINT", "http://env.test/fs")
        assert UploadClient().endpoint == "http://env.test/fs"


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


class TestParseResponse:
    @pytest.mark.parametrize(
        "body, expected",
        [
            ({"steps": 7}, 7),
            ({"steps": 0}, 0),
            ({"steps": "12"}, 12),
            ({"steps": 4.0}, 4),
            ({}, 0),
            ({"count": 5}, 0),
            ({"steps": None}, 0),
            ({"steps": "many"}, 0),
            ({"steps": -3}, 0),
            ({"steps": 2.5}, 0),
            ({"steps": True}, 0),
            ([1, 2, 3], 0),
            ("steps", 0),
        ],
    )
    def test_steps_extraction(self, body, expected: int) -> None:
        assert UploadClient.parse_response(_response(200, body)).steps_delta == expected


# ---------------------------------------------------------------------------
# Real httpx plumbing (MockTransport)
# ---------------------------------------------------------------------------


def _transport_client(handler, **kwargs) -> UploadClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), **kwargs)
    return UploadClient(
        endpoint=TEST_ENDPOINT,
        batch_size=TEST_CAPACITY,
        http_client=http_client,
    )


class TestUploadClientTransport:
    @pytest.mark.asyncio
    async def test_json_response_read_through_httpx(self, walking_batch: Batch) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"steps": 11})

        client = _transport_client(handler)
        assert await client.upload(walking_batch, 2.0) == 11
        assert seen[0].method == "POST"
        assert seen[0].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_corrupt_gzip_body_raises_transport_error(self, walking_batch: Batch) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, content=b"not gzip"
            )

        client = _transport_client(handler)
        with pytest.raises(TransportError) as exc_info:
            await client.upload(walking_batch, 1.0)
        assert isinstance(exc_info.value.__cause__, httpx.DecodingError)

    @pytest.mark.asyncio
    async def test_redirect_loop_raises_transport_error(self, walking_batch: Batch) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"Location": TEST_ENDPOINT})

        client = _transport_client(handler, follow_redirects=True)
        with pytest.raises(TransportError) as exc_info:
            await client.upload(walking_batch, 1.0)
        assert isinstance(exc_info.value.__cause__, httpx.TooManyRedirects)

    @pytest.mark.asyncio
    async def test_connect_error_raises_transport_error(self, walking_batch: Batch) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _transport_client(handler)
        with pytest.raises(TransportError):
            await client.upload(walking_batch, 1.0)

    @pytest.mark.asyncio
    async def test_non_json_success_body_means_zero_steps(self, walking_batch: Batch) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>ok</html>")

        client = _transport_client(handler)
        assert await client.upload(walking_batch, 1.0) == 0
