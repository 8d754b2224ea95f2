"""Entrypoint FastAPI pour chunk_uploader.

Reçoit un fichier en une requête ou en chunks numérotés (multipart ou corps
brut), délègue à `UploadHandler` et renvoie le résultat en JSON.
"""

from contextlib import asynccontextmanager
from email.utils import formatdate

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

import uvicorn
import logging

from chunk_uploader.cleanup import CleanupScheduler
from chunk_uploader.config import CLEANUP_INTERVAL, UploadConfig, as_frontend_dict
from chunk_uploader.errors import UploadErrorCode, UploadResult
from chunk_uploader.handler import UploadHandler, UploadRequest

# ---------------------------------
# Configuration de base
# ---------------------------------
logger = logging.getLogger("chunk_uploader")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

config = UploadConfig.from_env()
handler = UploadHandler(config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if CLEANUP_INTERVAL > 0:
        scheduler = CleanupScheduler(config.target_dir, config.max_file_age, CLEANUP_INTERVAL)
        scheduler.start()
    yield
    if scheduler is not None:
        await scheduler.stop()


app = FastAPI(title="Chunk Uploader", version="0.1", description="Staging et réassemblage d'uploads par chunks",
              lifespan=lifespan)

# ---------------------------------
# Helpers
# ---------------------------------
def no_cache_headers() -> dict:
    # iOS devices in particular cache POST responses otherwise
    return {
        "Expires": "Mon, 26 Jul 1997 05:00:00 GMT",
        "Last-Modified": formatdate(usegmt=True),
        "Cache-Control": "no-store, no-cache, must-revalidate, post-check=0, pre-check=0",
        "Pragma": "no-cache",
    }


def cors_headers() -> dict:
    origin = handler.config.allow_origin
    if not origin:
        return {}
    return {"Access-Control-Allow-Origin": origin}


def is_multipart(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("multipart/form-data")


def multipart_upload_request(request: Request, form) -> UploadRequest:
    params = dict(request.query_params)
    field = form.get(handler.config.file_data_name)
    for key in ("name", "chunk", "chunks"):
        value = form.get(key)
        if isinstance(value, str):
            params[key] = value
    return UploadRequest.from_params(params, field=field, multipart=True)


async def handle_upload(upload_request: UploadRequest) -> UploadResult:
    logger.info("Upload received: name=%s chunk=%s chunks=%s raw=%s",
                upload_request.file_name, upload_request.chunk, upload_request.chunks, upload_request.is_raw)
    return await handler.handle(upload_request)

# ---------------------------------
# Endpoints
# ---------------------------------
@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/config")
async def frontend_config():
    return as_frontend_dict(handler.config)


@app.options("/upload")
async def upload_preflight():
    headers = cors_headers()
    if headers:
        headers["Access-Control-Allow-Methods"] = "POST, OPTIONS"
        headers["Access-Control-Allow-Headers"] = "Content-Type"
    return Response(status_code=200, headers=headers)


@app.post("/upload")
async def upload(request: Request):
    if is_multipart(request):
        # spooled upload files are closed when the block exits
        async with request.form() as form:
            result = await handle_upload(multipart_upload_request(request, form))
    else:
        params = dict(request.query_params)
        result = await handle_upload(UploadRequest.from_params(params, stream=request.stream(), multipart=False))

    if result:
        status_code = 200
    elif result.code == UploadErrorCode.TYPE_ERR:
        status_code = 400
    else:
        status_code = 500

    headers = no_cache_headers()
    headers.update(cors_headers())
    return JSONResponse(result.to_dict(), status_code=status_code, headers=headers)

# ---------------------------------
# Entrypoint
# ---------------------------------
if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, log_level="info")
