from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from svgconv_backend.auth import AccessGate, authenticate_request
from svgconv_backend.config import Settings, load_settings
from svgconv_backend.converter import InkscapeConverter
from svgconv_backend.errors import AuthenticationError, NotFoundError, ValidationError, install_error_handlers
from svgconv_backend.fetcher import RemoteFetcher
from svgconv_backend.file_store import FileStore
from svgconv_backend.intake import ensure_allowed_mime, ensure_size, with_extension_for
from svgconv_backend.logging_config import setup_logging
from svgconv_backend.pipeline import ConversionPipeline, Converter
from svgconv_backend.retention import RetentionSweeper


logger = logging.getLogger("svgconv_backend.server")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
}


class ConvertUrlRequest(BaseModel):
    fileUrl: Optional[str] = None


def requires_credential(method: str, path: str) -> bool:
    if method == "POST":
        return path in ("/api/convert", "/api/convert-url")
    if method in ("GET", "HEAD"):
        return path.startswith("/files/")
    return False


def get_pipeline(request: Request) -> ConversionPipeline:
    return request.app.state.pipeline


def get_fetcher(request: Request) -> RemoteFetcher:
    return request.app.state.fetcher


def create_app(
    settings: Optional[Settings] = None,
    converter: Optional[Converter] = None,
    fetcher: Optional[RemoteFetcher] = None,
) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    store = FileStore(settings.incoming_dir, settings.converted_dir)
    store.ensure_dirs()
    if converter is None:
        converter = InkscapeConverter(settings.converter_binary, settings.convert_timeout_seconds)
    if fetcher is None:
        fetcher = RemoteFetcher(settings.fetch_timeout_seconds, settings.max_fetch_bytes)
    sweeper = RetentionSweeper(store, settings.retention)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.ensure_dirs()
        task = asyncio.create_task(sweeper.run_forever())
        app.state._cleanup_task = task
        logger.info("SVG Converter API server running on %s", settings.base_url)
        try:
            yield
        finally:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.sweeper = sweeper
    app.state.fetcher = fetcher
    app.state.access_gate = AccessGate(settings.jwt_secret)
    app.state.pipeline = ConversionPipeline(store, converter, settings.base_url)

    install_error_handlers(app)

    # Registered before the headers middleware so it runs inside it, and as
    # middleware so a rejected upload body is never parsed.
    @app.middleware("http")
    async def _access_gate(request: Request, call_next):
        if requires_credential(request.method, request.url.path):
            try:
                authenticate_request(request)
            except AuthenticationError as exc:
                return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
        return await call_next(request)

    @app.middleware("http")
    async def _security_headers(request: Request, call_next):
        response = await call_next(request)
        for key, value in SECURITY_HEADERS.items():
            response.headers.setdefault(key, value)
        return response

    @app.post("/api/convert")
    async def convert_upload(
        file: Optional[UploadFile] = File(None),
        pipeline: ConversionPipeline = Depends(get_pipeline),
    ) -> JSONResponse:
        if file is None or not file.filename:
            raise ValidationError("No file uploaded")
        mime = ensure_allowed_mime(file.content_type)

        # Limit read so an oversized upload is rejected before it is stored.
        data = await file.read(settings.max_upload_bytes + 1)
        ensure_size(data, settings.max_upload_bytes)

        outcome = await pipeline.run(with_extension_for(file.filename, mime), data)
        return JSONResponse(pipeline.describe(outcome))

    @app.post("/api/convert-url")
    async def convert_url(
        payload: Optional[ConvertUrlRequest] = None,
        pipeline: ConversionPipeline = Depends(get_pipeline),
        fetcher: RemoteFetcher = Depends(get_fetcher),
    ) -> JSONResponse:
        if payload is None or not payload.fileUrl:
            raise ValidationError("fileUrl is required")

        fetched = await fetcher.fetch(payload.fileUrl)
        outcome = await pipeline.run(fetched.name_hint, fetched.data)
        return JSONResponse(pipeline.describe(outcome))

    @app.get("/files/{filename}")
    async def get_file(filename: str, request: Request) -> FileResponse:
        stored = request.app.state.store.find(filename)
        if stored is None:
            raise NotFoundError("File not found")
        try:
            # The sweeper may have removed it since find().
            stat_result = stored.path.stat()
        except FileNotFoundError:
            raise NotFoundError("File not found") from None
        return FileResponse(stored.path, stat_result=stat_result, headers={"Cache-Control": "no-store"})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server:app", host=app.state.settings.host, port=app.state.settings.port, reload=False)
