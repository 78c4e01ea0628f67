from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import UploadFile

from server import create_app
from svgconv_backend.config import Settings
from svgconv_backend.fetcher import RemoteFetcher

from conftest import PNG_BYTES, SVG_BYTES, FakeConverter


def _remote(request: httpx.Request) -> httpx.Response:
    if request.url.path in ("/logo.png", "/render"):
        return httpx.Response(200, headers={"content-type": "image/png"}, content=PNG_BYTES)
    if request.url.path == "/notes.txt":
        return httpx.Response(200, headers={"content-type": "text/plain"}, content=b"hi")
    return httpx.Response(404)


def _client(settings: Settings, converter: FakeConverter | None = None) -> TestClient:
    fetcher = RemoteFetcher(timeout_seconds=5, max_bytes=1024, transport=httpx.MockTransport(_remote))
    app = create_app(settings, converter=converter or FakeConverter(), fetcher=fetcher)
    return TestClient(app)


def _files(settings: Settings, which: str) -> list[str]:
    directory = settings.incoming_dir if which == "incoming" else settings.converted_dir
    return sorted(p.name for p in directory.iterdir())


def _path_of(url: str) -> str:
    return url.replace("http://testserver", "")


def test_upload_round_trip(settings: Settings, token: str) -> None:
    client = _client(settings)

    resp = client.post(
        "/api/convert",
        headers={"api-key": token},
        files={"file": ("logo.png", PNG_BYTES, "image/png")},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "File converted successfully"
    original_url, converted_url = body["files"]["original"], body["files"]["converted"]
    assert original_url.startswith("http://testserver/files/") and original_url.endswith("-logo.png")
    assert converted_url.endswith("-logo.svg")

    original = client.get(_path_of(original_url), headers={"api-key": token})
    assert original.status_code == 200
    assert original.content == PNG_BYTES
    assert original.headers["content-type"] == "image/png"

    converted = client.get(_path_of(converted_url), headers={"api-key": token})
    assert converted.status_code == 200
    assert converted.content == SVG_BYTES
    assert converted.headers["content-type"].startswith("image/svg+xml")
    assert converted.headers["x-content-type-options"] == "nosniff"


def test_same_name_uploads_do_not_collide(settings: Settings, token: str) -> None:
    client = _client(settings)

    urls = []
    for payload in (b"first", b"second"):
        resp = client.post(
            "/api/convert",
            headers={"api-key": token},
            files={"file": ("logo.png", PNG_BYTES + payload, "image/png")},
        )
        assert resp.status_code == 200
        urls.append(resp.json()["files"]["original"])

    assert urls[0] != urls[1]
    assert len(_files(settings, "incoming")) == 2
    assert client.get(_path_of(urls[0]), headers={"api-key": token}).content == PNG_BYTES + b"first"


def test_failed_conversion_leaves_no_orphan(settings: Settings, token: str) -> None:
    client = _client(settings, FakeConverter(fail_with="inkscape: unsupported file"))

    resp = client.post(
        "/api/convert",
        headers={"api-key": token},
        files={"file": ("logo.png", PNG_BYTES, "image/png")},
    )

    assert resp.status_code == 500
    assert resp.json() == {
        "error": "Conversion failed",
        "code": "conversion_failed",
        "details": "inkscape: unsupported file",
    }
    assert _files(settings, "incoming") == []
    assert _files(settings, "converted") == []


def test_disallowed_type_is_rejected_before_write(settings: Settings, token: str) -> None:
    converter = FakeConverter()
    client = _client(settings, converter)

    resp = client.post(
        "/api/convert",
        headers={"api-key": token},
        files={"file": ("notes.txt", b"plain text", "text/plain")},
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "File type not allowed"
    assert _files(settings, "incoming") == []
    assert converter.calls == []


def test_missing_file_is_a_client_error(settings: Settings, token: str) -> None:
    resp = _client(settings).post("/api/convert", headers={"api-key": token}, data={"other": "x"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "No file uploaded"


def test_oversized_upload_is_rejected(settings: Settings, token: str) -> None:
    resp = _client(settings).post(
        "/api/convert",
        headers={"api-key": token},
        files={"file": ("big.png", b"x" * (settings.max_upload_bytes + 1), "image/png")},
    )

    assert resp.status_code == 413
    assert _files(settings, "incoming") == []


@pytest.mark.parametrize("headers", [{}, {"api-key": "tampered.token.value"}])
def test_missing_and_tampered_credentials_get_same_rejection(settings: Settings, token: str, headers: dict) -> None:
    client = _client(settings)

    upload = client.post("/api/convert", headers=headers, files={"file": ("logo.png", PNG_BYTES, "image/png")})
    by_url = client.post("/api/convert-url", headers=headers, json={"fileUrl": "https://example.com/logo.png"})
    download = client.get("/files/anything.png", headers=headers)

    for resp in (upload, by_url, download):
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized", "code": "unauthorized"}
    assert _files(settings, "incoming") == []
    assert _files(settings, "converted") == []


def test_token_with_flipped_signature_is_rejected(settings: Settings, token: str) -> None:
    head, payload, signature = token.split(".")
    flipped = ("A" if signature[0] != "A" else "B") + signature[1:]

    resp = _client(settings).get("/files/x.png", headers={"api-key": f"{head}.{payload}.{flipped}"})

    assert resp.status_code == 401


def test_convert_url_round_trip(settings: Settings, token: str) -> None:
    client = _client(settings)

    resp = client.post(
        "/api/convert-url",
        headers={"api-key": token},
        json={"fileUrl": "https://example.com/logo.png?size=large"},
    )

    assert resp.status_code == 200
    files = resp.json()["files"]
    assert files["original"].endswith("-logo.png")
    assert files["converted"].endswith("-logo.svg")
    assert client.get(_path_of(files["original"]), headers={"api-key": token}).content == PNG_BYTES


def test_convert_url_requires_field(settings: Settings, token: str) -> None:
    client = _client(settings)

    for body in ({}, {"fileUrl": ""}):
        resp = client.post("/api/convert-url", headers={"api-key": token}, json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "fileUrl is required"


def test_convert_url_disallowed_type_writes_nothing(settings: Settings, token: str) -> None:
    resp = _client(settings).post(
        "/api/convert-url",
        headers={"api-key": token},
        json={"fileUrl": "https://example.com/notes.txt"},
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "File type not allowed"
    assert _files(settings, "incoming") == []


def test_convert_url_remote_failure(settings: Settings, token: str) -> None:
    resp = _client(settings).post(
        "/api/convert-url",
        headers={"api-key": token},
        json={"fileUrl": "https://example.com/missing.png"},
    )

    assert resp.status_code == 502
    assert resp.json()["code"] == "fetch_failed"
    assert _files(settings, "incoming") == []


def test_convert_url_conversion_failure_cleans_up(settings: Settings, token: str) -> None:
    client = _client(settings, FakeConverter(fail_with="bad input"))

    resp = client.post(
        "/api/convert-url",
        headers={"api-key": token},
        json={"fileUrl": "https://example.com/logo.png"},
    )

    assert resp.status_code == 500
    assert resp.json()["details"] == "bad input"
    assert _files(settings, "incoming") == []


def test_unknown_file_is_404(settings: Settings, token: str) -> None:
    resp = _client(settings).get("/files/nope.png", headers={"api-key": token})

    assert resp.status_code == 404
    assert resp.json() == {"error": "File not found", "code": "not_found"}


def test_hidden_temp_files_are_not_served(settings: Settings, token: str) -> None:
    client = _client(settings)
    (settings.incoming_dir / ".x.png.part").write_bytes(b"partial")

    resp = client.get("/files/.x.png.part", headers={"api-key": token})

    assert resp.status_code == 404


def test_unmatched_route_returns_generic_not_found(settings: Settings) -> None:
    client = _client(settings)

    resp = client.get("/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "URL Not found", "code": "not_found"}

    resp = client.get("/api/convert")
    assert resp.status_code == 404


def test_startup_creates_directories(tmp_path) -> None:
    settings = Settings(data_dir=tmp_path / "data", base_url="http://testserver", jwt_secret="x" * 40)

    create_app(settings, converter=FakeConverter())

    assert settings.incoming_dir.is_dir()
    assert settings.converted_dir.is_dir()


def test_lifespan_starts_and_stops_sweeper(settings: Settings) -> None:
    app = create_app(settings, converter=FakeConverter())

    with TestClient(app):
        task = app.state._cleanup_task
        assert not task.done()

    assert task.cancelled() or task.done()


def test_convert_url_without_extension_gets_one_from_content_type(settings: Settings, token: str) -> None:
    client = _client(settings)

    resp = client.post(
        "/api/convert-url",
        headers={"api-key": token},
        json={"fileUrl": "https://example.com/render?id=7"},
    )

    assert resp.status_code == 200
    original_url = resp.json()["files"]["original"]
    assert original_url.endswith("-render.png")
    original = client.get(_path_of(original_url), headers={"api-key": token})
    assert original.headers["content-type"] == "image/png"
    assert original.content == PNG_BYTES


def test_upload_without_extension_gets_one_from_content_type(settings: Settings, token: str) -> None:
    resp = _client(settings).post(
        "/api/convert",
        headers={"api-key": token},
        files={"file": ("scan", PNG_BYTES, "image/png")},
    )

    assert resp.status_code == 200
    assert resp.json()["files"]["original"].endswith("-scan.png")


def test_svg_upload_keeps_original_and_converted_apart(settings: Settings, token: str) -> None:
    client = _client(settings)
    source = b'<svg xmlns="http://www.w3.org/2000/svg"><rect/></svg>'

    resp = client.post(
        "/api/convert",
        headers={"api-key": token},
        files={"file": ("a.svg", source, "image/svg+xml")},
    )

    assert resp.status_code == 200
    files = resp.json()["files"]
    assert files["original"] != files["converted"]
    assert files["converted"].endswith("-a.converted.svg")
    assert client.get(_path_of(files["original"]), headers={"api-key": token}).content == source
    assert client.get(_path_of(files["converted"]), headers={"api-key": token}).content == SVG_BYTES


def test_unauthenticated_upload_body_is_never_parsed(
    settings: Settings, token: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    created = []
    real_init = UploadFile.__init__

    def counting_init(self, *args, **kwargs):
        created.append(1)
        real_init(self, *args, **kwargs)

    monkeypatch.setattr(UploadFile, "__init__", counting_init)
    client = _client(settings)

    resp = client.post("/api/convert", files={"file": ("logo.png", PNG_BYTES, "image/png")})
    assert resp.status_code == 401
    assert created == []

    resp = client.post(
        "/api/convert",
        headers={"api-key": token},
        files={"file": ("logo.png", PNG_BYTES, "image/png")},
    )
    assert resp.status_code == 200
    assert created
