"""
Tests for the network-facing services — backend client, AI gateway, image uploader.
"""
import asyncio
import base64
import io
import json

import httpx
import pytest
from PIL import Image

from conftest import BACKEND_URL, ai_reply, upload_reply
from spendsmart.errors import (
    AuthenticationError,
    BadRequestError,
    DecodingError,
    ImageProcessingError,
    InvalidReceiptError,
    NetworkError,
    NoContentError,
    PersistenceError,
    RateLimitedError,
    ServerError,
    UnexpectedStatusError,
    user_message,
)
from spendsmart.pipeline.backend import (
    GENERATE_ENDPOINT,
    UPLOAD_IMAGE_ENDPOINT,
    UPLOAD_IMAGES_ENDPOINT,
    VALIDATE_RECEIPT_ENDPOINT,
    BackendClient,
)
from spendsmart.pipeline.gateway import AIGateway
from spendsmart.pipeline.images import fit_within, from_data_uri, resize_jpeg, to_data_uri
from spendsmart.pipeline.prompts import RECEIPT_SYSTEM_INSTRUCTIONS
from spendsmart.pipeline.uploader import ImageUploader, is_local_reference
from spendsmart.schemas import GenerationConfig, LocalUpload, RemoteUpload


def _image_size(data_uri: str) -> tuple[int, int]:
    raw = base64.b64decode(data_uri.split(",", 1)[1])
    with Image.open(io.BytesIO(raw)) as img:
        return img.size


# =====================================================================
# Backend client
# =====================================================================
class TestBackendClient:
    @pytest.mark.parametrize("status,error", [
        (400, BadRequestError),
        (401, AuthenticationError),
        (403, AuthenticationError),
        (429, RateLimitedError),
        (500, ServerError),
        (503, ServerError),
        (418, UnexpectedStatusError),
    ])
    def test_status_classification(self, backend, stub, status, error):
        stub.on("/x", status=status, json={"error": "nope"})
        with pytest.raises(error):
            asyncio.run(backend.post_json("/x", {}))

    def test_transport_error(self, backend, stub):
        stub.on("/x", exc=httpx.ConnectError("refused"))
        with pytest.raises(NetworkError):
            asyncio.run(backend.post_json("/x", {}))

    def test_bad_content_encoding(self, backend, stub):
        stub.on("/x", content=b"not-gzip", headers={"content-encoding": "gzip"})
        with pytest.raises(DecodingError):
            asyncio.run(backend.post_json("/x", {}))

    def test_redirect_loop(self, backend, stub):
        stub.on("/x", exc=httpx.TooManyRedirects("loop"))
        with pytest.raises(NetworkError):
            asyncio.run(backend.post_json("/x", {}))
        with pytest.raises(NetworkError):
            asyncio.run(backend.get_bytes("/x"))

    def test_non_json_body(self, backend, stub):
        stub.on("/x", content=b"<html>oops</html>")
        with pytest.raises(DecodingError):
            asyncio.run(backend.post_json("/x", {}))

    def test_auth_headers(self, backend, stub):
        stub.on("/x", json={"ok": True})
        asyncio.run(backend.post_json("/x", {}, requires_auth=True, use_secret_key=True))
        _, _, headers = stub.calls[-1]
        assert headers["authorization"] == "Bearer test-token"
        assert headers["x-api-key"] == "test-secret"

    def test_no_auth_headers_by_default(self, backend, stub):
        stub.on("/x", json={"ok": True})
        asyncio.run(backend.post_json("/x", {}))
        _, _, headers = stub.calls[-1]
        assert "authorization" not in headers
        assert "x-api-key" not in headers

    def test_user_messages(self):
        assert "sign in" in user_message(AuthenticationError())
        assert "few minutes" in user_message(RateLimitedError())
        assert user_message(InvalidReceiptError("blurry")) == "blurry"
        assert user_message(RuntimeError("boom")) == "Processing failed. Please try again."


# =====================================================================
# AI gateway
# =====================================================================
class TestGateway:
    def test_request_shape_with_image(self, backend, stub, make_image):
        stub.on(GENERATE_ENDPOINT, json=ai_reply({"isValid": True}))
        gateway = AIGateway(backend)
        text = asyncio.run(gateway.extract_receipt(make_image()))

        assert json.loads(text) == {"isValid": True}
        body = stub.bodies(GENERATE_ENDPOINT)[0]
        assert body["image"].startswith("data:image/jpeg;base64,")
        assert body["systemInstruction"] == RECEIPT_SYSTEM_INSTRUCTIONS
        assert "total_amount" in body["prompt"]
        assert body["config"] == {
            "temperature": 1.0,
            "topP": 0.95,
            "topK": 40,
            "maxOutputTokens": 8192,
            "responseFormat": "application/json",
        }

    def test_text_only_prompt_omits_image(self, backend, stub):
        stub.on(GENERATE_ENDPOINT, json=ai_reply("hello"))
        text = asyncio.run(AIGateway(backend).generate("Say hello"))
        assert text == "hello"
        assert stub.bodies(GENERATE_ENDPOINT)[0] == {"prompt": "Say hello"}

    def test_partial_config(self):
        assert GenerationConfig(temperature=0.2).to_wire() == {"temperature": 0.2}

    def test_no_content(self, backend, stub):
        stub.on(GENERATE_ENDPOINT, json={"response": {"text": ""}})
        with pytest.raises(NoContentError):
            asyncio.run(AIGateway(backend).generate("p"))

    def test_missing_envelope(self, backend, stub):
        stub.on(GENERATE_ENDPOINT, json={"candidates": []})
        with pytest.raises(NoContentError):
            asyncio.run(AIGateway(backend).generate("p"))

    def test_undecodable_image(self, backend, stub):
        with pytest.raises(ImageProcessingError):
            asyncio.run(AIGateway(backend).extract_receipt(b"not an image"))
        assert stub.calls == []

    def test_auth_failure_classified(self, backend, stub, make_image):
        stub.on(GENERATE_ENDPOINT, status=401, json={"error": "bad token"})
        with pytest.raises(AuthenticationError):
            asyncio.run(AIGateway(backend).extract_receipt(make_image()))

    def test_validate_receipt(self, backend, stub, make_image):
        stub.on(VALIDATE_RECEIPT_ENDPOINT, json={
            "isValid": False, "confidence": 0.9, "message": "Not a receipt",
            "missing_elements": ["total"],
        })
        result = asyncio.run(AIGateway(backend).validate_receipt(make_image()))
        assert result.is_valid is False
        assert result.missing_elements == ["total"]


# =====================================================================
# Images
# =====================================================================
class TestImages:
    @pytest.mark.parametrize("size,expected", [
        ((4000, 3000), (1000, 750)),
        ((1500, 3000), (500, 1000)),
        ((800, 600), (800, 600)),
        ((1000, 1000), (1000, 1000)),
    ])
    def test_fit_within(self, size, expected):
        assert fit_within(size, 1000) == expected

    def test_resize_outputs_jpeg(self, make_image):
        out = resize_jpeg(make_image(2400, 1200, fmt="PNG"))
        with Image.open(io.BytesIO(out)) as img:
            assert img.format == "JPEG"
            assert img.size == (1000, 500)

    def test_data_uri(self):
        assert from_data_uri(to_data_uri(b"abc")) == b"abc"
        assert from_data_uri(base64.b64encode(b"abc").decode()) == b"abc"
        with pytest.raises(ImageProcessingError):
            from_data_uri("data:image/jpeg;base64,***")


# =====================================================================
# Image uploader
# =====================================================================
@pytest.fixture()
def uploader(backend, tmp_path):
    return ImageUploader(
        backend,
        images_dir=tmp_path / "images",
        clock=lambda: 1722256800.5,
        random_suffix=lambda: "abcd1234",
    )


class TestUploader:
    def test_remote_success(self, uploader, stub, make_image):
        stub.on(UPLOAD_IMAGE_ENDPOINT, json=upload_reply("https://img.example/a.jpg", "imgbb"))
        outcome = asyncio.run(uploader.upload_outcome(make_image(3000, 2000)))

        assert isinstance(outcome, RemoteUpload)
        assert outcome.reference == "https://img.example/a.jpg"
        assert outcome.provider == "imgbb"
        body = stub.bodies(UPLOAD_IMAGE_ENDPOINT)[0]
        assert max(_image_size(body["image"])) == 1000
        _, _, headers = stub.calls[-1]
        assert headers["authorization"] == "Bearer test-token"

    def test_small_image_not_upscaled(self, uploader, stub, make_image):
        stub.on(UPLOAD_IMAGE_ENDPOINT, json=upload_reply())
        asyncio.run(uploader.upload(make_image(320, 240)))
        assert _image_size(stub.bodies(UPLOAD_IMAGE_ENDPOINT)[0]["image"]) == (320, 240)

    @pytest.mark.parametrize("route", [
        {"status": 500, "json": {"error": "boom"}},
        {"status": 200, "json": {"success": False, "data": None}},
        {"status": 200, "json": {"success": True, "data": {"provider": "x"}}},
        {"status": 200, "content": b"not json"},
        {"exc": httpx.ReadTimeout("slow")},
        {"status": 200, "content": b"not-gzip", "headers": {"content-encoding": "gzip"}},
        {"exc": httpx.TooManyRedirects("loop")},
    ], ids=["5xx", "success-false", "no-url", "not-json", "timeout", "bad-encoding", "redirects"])
    def test_fallback_to_local(self, uploader, stub, make_image, route):
        stub.on(UPLOAD_IMAGE_ENDPOINT, **route)
        reference = asyncio.run(uploader.upload(make_image(2000, 1000)))

        assert is_local_reference(reference)
        assert reference == "local://receipt_1722256800_abcd1234.jpg"
        path = uploader.local_path(reference)
        assert path.exists()
        with Image.open(path) as img:
            assert img.format == "JPEG"
            assert img.size == (1000, 500)

    def test_undecodable_image_stored_as_is(self, uploader, stub):
        outcome = asyncio.run(uploader.upload_outcome(b"\x00garbage"))
        assert isinstance(outcome, LocalUpload)
        assert uploader.local_path(outcome.location).read_bytes() == b"\x00garbage"
        assert stub.calls == []

    def test_partial_success_in_batch(self, backend, tmp_path, make_image):
        responses = iter([
            httpx.Response(200, json=upload_reply("https://img.example/ok.jpg")),
            httpx.Response(502, json={"error": "bad gateway"}),
        ])
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: next(responses)),
            base_url=BACKEND_URL,
        )
        uploader = ImageUploader(BackendClient(http, auth_token="t"), images_dir=tmp_path)

        refs = asyncio.run(uploader.upload_many([make_image(), make_image()]))

        assert len(refs) == 2
        assert sum(1 for r in refs if is_local_reference(r)) == 1
        assert "https://img.example/ok.jpg" in refs

    def test_unwritable_image_is_left_out(self, backend, tmp_path, make_image):
        responses = iter([
            httpx.Response(200, json=upload_reply("https://img.example/ok.jpg")),
            httpx.Response(502, json={"error": "bad gateway"}),
        ])
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: next(responses)),
            base_url=BACKEND_URL,
        )
        blocked = tmp_path / "blocked"
        blocked.write_bytes(b"")
        uploader = ImageUploader(BackendClient(http, auth_token="t"), images_dir=blocked)

        with pytest.raises(PersistenceError):
            uploader.save_local(b"jpeg")
        refs = asyncio.run(uploader.upload_many([make_image(), make_image()]))

        assert refs == ["https://img.example/ok.jpg"]

    def test_local_names_are_unique(self, backend, stub, tmp_path, make_image):
        stub.on(UPLOAD_IMAGE_ENDPOINT, status=500, json={})
        uploader = ImageUploader(backend, images_dir=tmp_path)
        refs = asyncio.run(uploader.upload_many([make_image()] * 3))
        assert len(set(refs)) == 3

    def test_upload_batch_remote(self, uploader, stub, make_image):
        stub.on(UPLOAD_IMAGES_ENDPOINT, json={
            "success": True, "data": {"urls": ["https://a", "https://b"], "provider": "imgbb"},
        })
        urls = asyncio.run(uploader.upload_batch_remote([make_image(), make_image()]))
        assert urls == ["https://a", "https://b"]
        assert len(stub.bodies(UPLOAD_IMAGES_ENDPOINT)[0]["images"]) == 2

    def test_upload_batch_remote_has_no_fallback(self, uploader, stub, make_image):
        stub.on(UPLOAD_IMAGES_ENDPOINT, status=429, json={})
        with pytest.raises(RateLimitedError):
            asyncio.run(uploader.upload_batch_remote([make_image()]))

    def test_load_image(self, uploader, stub, make_image):
        local = uploader.save_local(b"jpeg-bytes")
        assert asyncio.run(uploader.load_image(local.location)) == b"jpeg-bytes"
        assert asyncio.run(uploader.load_image("local://missing.jpg")) is None

        stub.on("/img/1.jpg", content=b"remote-bytes")
        assert asyncio.run(uploader.load_image(f"{BACKEND_URL}/img/1.jpg")) == b"remote-bytes"

    def test_local_path_rejects_traversal(self, uploader):
        with pytest.raises(ValueError):
            uploader.local_path("local://../secrets.json")
