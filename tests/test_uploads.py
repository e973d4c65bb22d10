import requests

import uploads
from uploads import ImgbbUploader


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _uploader():
    return ImgbbUploader("key-123", "https://upload.example/1/upload", timeout=5)


def test_successful_upload_returns_url(monkeypatch):
    captured = {}

    def fake_post(url, params, files, timeout):
        captured.update(url=url, params=params, files=files, timeout=timeout)
        return FakeResponse(payload={"success": True, "data": {"url": "https://i.ibb.co/x.jpg"}})

    monkeypatch.setattr(uploads.requests, "post", fake_post)
    result = _uploader().upload(b"img", "photo.jpg")
    assert result.url == "https://i.ibb.co/x.jpg"
    assert result.error is None
    assert captured["params"] == {"key": "key-123"}
    assert captured["files"] == {"image": ("photo.jpg", b"img")}


def test_http_error_is_reported_with_status(monkeypatch):
    monkeypatch.setattr(uploads.requests, "post", lambda *a, **k: FakeResponse(status_code=400, text="bad"))
    result = _uploader().upload(b"img", "photo.jpg")
    assert result.url is None
    assert result.error == "Failed to upload image. Status: 400"


def test_unsuccessful_payload(monkeypatch):
    monkeypatch.setattr(uploads.requests, "post", lambda *a, **k: FakeResponse(payload={"success": False}))
    result = _uploader().upload(b"img", "photo.jpg")
    assert result.error == "Failed to process upload response from image service."


def test_network_failure(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(uploads.requests, "post", boom)
    result = _uploader().upload(b"img", "photo.jpg")
    assert result.error.startswith("An unexpected error occurred during image upload")


def test_missing_api_key_is_not_configured():
    result = ImgbbUploader(None, "https://upload.example/1/upload").upload(b"img", "photo.jpg")
    assert "not configured" in result.error


def test_placeholder_url_uses_seed():
    assert uploads.placeholder_image_url("abc") == uploads.settings.PLACEHOLDER_IMAGE_URL.format(seed="abc")


def test_malformed_data_payload(monkeypatch):
    payload = {"success": True, "data": "x"}
    monkeypatch.setattr(uploads.requests, "post", lambda *a, **k: FakeResponse(payload=payload))
    result = _uploader().upload(b"img", "photo.jpg")
    assert result.url is None
    assert result.error == "Failed to process upload response from image service."
