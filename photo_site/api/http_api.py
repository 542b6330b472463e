import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import Body, Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from photo_site.core.env import configure_logging, env_flag, env_int, load_dotenv_if_present
from photo_site.core.models import LogEntryRequest, ResourceAccessRequest
from photo_site.ingest import (
    PhotoNotFoundError,
    ReloadInProgressError,
    SidecarError,
    create_photo,
    discard_staged,
    reload_tables,
    stage_uploads,
    store_variants,
)
from photo_site.store import (
    LogSink,
    MetadataStore,
    RedisSecretsProvider,
    SecretsProvider,
    init_db,
    install_log_sink,
    photography_token_valid,
    site_credentials_valid,
)

app = FastAPI(title="Photo Site API")

load_dotenv_if_present()
configure_logging()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./site_logs.db")
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DATABASE = os.getenv("MONGO_DATABASE", "photography")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
SECRETS_KEY = os.getenv("SECRETS_KEY", "secrets")
PHOTO_ROOT = Path(os.getenv("PHOTO_ROOT", "/srv/http/images/photography"))
UPLOAD_STAGING_DIR = Path(
    os.getenv("UPLOAD_STAGING_DIR", Path(tempfile.gettempdir()) / "photo_site_uploads")
)
SITE_BASE_URL = os.getenv("SITE_BASE_URL", "")
TRUST_PROXY = env_flag("TRUST_PROXY", default=True)
LOG_SINK_LEVEL = getattr(logging, os.getenv("LOG_SINK_LEVEL", "INFO").upper(), logging.INFO)

_owner_uid, _owner_gid = env_int("PHOTO_OWNER_UID"), env_int("PHOTO_OWNER_GID")
PHOTO_OWNER = (_owner_uid, _owner_gid) if _owner_uid is not None and _owner_gid is not None else None

engine = init_db(DATABASE_URL)
log_sink = LogSink(engine)
install_log_sink(log_sink, level=LOG_SINK_LEVEL)
metadata_store = MetadataStore(MONGO_URI, MONGO_DATABASE)
secrets_provider = RedisSecretsProvider(REDIS_URL, SECRETS_KEY)
basic_auth = HTTPBasic(auto_error=False)

PHOTOGRAPHY = "/api/photography"
PHOTOGRAPHY_LOG = {"category": "PHOTOGRAPHY"}


def get_store() -> MetadataStore:
    return metadata_store


def get_secrets_provider() -> SecretsProvider:
    return secrets_provider


def get_log_sink() -> LogSink:
    return log_sink


def client_ip(request: Request) -> str:
    if TRUST_PROXY:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def _load_secrets(provider: SecretsProvider) -> dict:
    try:
        return provider.get_secrets()
    except (RedisError, LookupError) as exc:
        logger.error("Could not load secrets: %s", exc)
        raise HTTPException(status_code=500) from exc


@app.middleware("http")
async def record_resource_access(request: Request, call_next):
    location = f"{SITE_BASE_URL}{request.url.path}"
    if request.url.query:
        location = f"{location}?{request.url.query}"
    try:
        await run_in_threadpool(log_sink.log_resource_access, location, client_ip(request))
    except SQLAlchemyError as exc:
        await run_in_threadpool(logger.warning, "Could not record access to %s: %s", location, exc)
    return await call_next(request)


@app.exception_handler(RequestValidationError)
async def validation_failed(request: Request, exc: RequestValidationError) -> Response:
    await run_in_threadpool(
        logger.warning, "Rejected malformed request to %s: %s", request.url.path, exc.errors()
    )
    return Response(status_code=400)


# Logging endpoints


@app.get("/api/")
def server_timestamp() -> dict:
    return {"timestamp": utc_timestamp()}


def _require_site_credentials(
    credentials: Optional[HTTPBasicCredentials], provider: SecretsProvider
) -> None:
    if credentials is None:
        logger.warning("Request made without an authorization header")
        raise HTTPException(status_code=401)
    secrets = _load_secrets(provider)
    if not site_credentials_valid(secrets, credentials.username, credentials.password):
        raise HTTPException(status_code=401)


@app.post("/api/append-to-log", status_code=201)
def append_to_log(
    entry: LogEntryRequest,
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_auth),
    provider: SecretsProvider = Depends(get_secrets_provider),
    sink: LogSink = Depends(get_log_sink),
) -> Response:
    _require_site_credentials(credentials, provider)
    try:
        sink.append(entry.category, entry.level, entry.message)
    except SQLAlchemyError as exc:
        logger.error("Could not append log entry: %s", exc)
        raise HTTPException(status_code=500) from exc
    return Response(status_code=201)


@app.post("/api/log-resource-access", status_code=201)
def log_resource_access(
    access: ResourceAccessRequest,
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_auth),
    provider: SecretsProvider = Depends(get_secrets_provider),
    sink: LogSink = Depends(get_log_sink),
) -> Response:
    _require_site_credentials(credentials, provider)
    try:
        sink.log_resource_access(access.resource, access.ip_address)
    except SQLAlchemyError as exc:
        logger.error("Could not record resource access: %s", exc)
        raise HTTPException(status_code=500) from exc
    return Response(status_code=201)


@app.post("/api/log-webpage-access", status_code=201)
def log_webpage_access(
    request: Request,
    webpage: str = Query(...),
    sink: LogSink = Depends(get_log_sink),
) -> Response:
    try:
        sink.log_resource_access(webpage, client_ip(request))
    except SQLAlchemyError as exc:
        logger.error("Could not record webpage access: %s", exc)
        raise HTTPException(status_code=500) from exc
    return Response(status_code=201)


# Photography endpoints


def _require_photography_token(token: Optional[str], provider: SecretsProvider) -> None:
    secrets = _load_secrets(provider)
    if not photography_token_valid(secrets, token):
        raise HTTPException(status_code=401)


@app.post(f"{PHOTOGRAPHY}/create-photo", status_code=201)
def create_photo_route(
    request: Request,
    tags: dict[str, bool] = Body(...),
    token: Optional[str] = Header(default=None),
    provider: SecretsProvider = Depends(get_secrets_provider),
) -> dict:
    _require_photography_token(token, provider)
    logger.debug(
        "User at %s submitted a new photo request with tags: %s",
        client_ip(request),
        tags,
        extra=PHOTOGRAPHY_LOG,
    )
    try:
        photo_id = create_photo(PHOTO_ROOT, tags, owner=PHOTO_OWNER)
    except OSError as exc:
        logger.error("Could not create photo folder: %s", exc, extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=500) from exc
    return {"uuid": photo_id}


@app.put(f"{PHOTOGRAPHY}/upload-photos/{{photo_id}}", status_code=201)
def upload_photos(
    photo_id: str,
    photos: list[UploadFile] = File(default=[]),
    token: Optional[str] = Header(default=None),
    provider: SecretsProvider = Depends(get_secrets_provider),
) -> dict:
    # Files are staged before the token is checked; every exit path below
    # removes whatever was not moved into the photo folder.
    try:
        staged = stage_uploads(((f.filename, f.file) for f in photos), UPLOAD_STAGING_DIR)
    except ValueError as exc:
        logger.warning("Rejected upload for %s: %s", photo_id, exc, extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=400) from exc
    except OSError as exc:
        logger.error("Could not stage upload for %s: %s", photo_id, exc, extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=500) from exc

    try:
        _require_photography_token(token, provider)
        variants = store_variants(PHOTO_ROOT, photo_id, staged, owner=PHOTO_OWNER)
    except PhotoNotFoundError as exc:
        logger.warning("Upload for unknown photo %s", photo_id, extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=404) from exc
    except (SidecarError, OSError) as exc:
        logger.error("Exception thrown uploading photos: %s", exc, extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=500) from exc
    except ValueError as exc:
        logger.warning("Rejected upload for %s: %s", photo_id, exc, extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=400) from exc
    finally:
        discard_staged(staged)
    return {"variants": variants}


@app.put(f"{PHOTOGRAPHY}/reload-tables", status_code=201)
def reload_tables_route(store: MetadataStore = Depends(get_store)) -> dict:
    logger.info("Triggered reload for photography tables", extra=PHOTOGRAPHY_LOG)
    try:
        report = reload_tables(PHOTO_ROOT, store)
    except ReloadInProgressError as exc:
        logger.warning("Rejected concurrent reload request", extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=409) from exc
    except (OSError, PyMongoError) as exc:
        logger.error(
            "Exception thrown while reloading photography tables: %s", exc, extra=PHOTOGRAPHY_LOG
        )
        raise HTTPException(status_code=500) from exc
    return report.model_dump()


@app.get(f"{PHOTOGRAPHY}/get-all-tags")
def get_all_tags(request: Request, store: MetadataStore = Depends(get_store)) -> dict:
    logger.debug("User at %s requested all tags", client_ip(request), extra=PHOTOGRAPHY_LOG)
    try:
        return store.get_tags()
    except PyMongoError as exc:
        logger.error("Exception thrown getting all tags: %s", exc, extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=500) from exc


@app.get(f"{PHOTOGRAPHY}/get-photos")
def get_photos(
    request: Request,
    tags: Optional[str] = Query(default=None),
    store: MetadataStore = Depends(get_store),
) -> list[dict]:
    logger.debug(
        "User at %s requested photos with tags: %s", client_ip(request), tags, extra=PHOTOGRAPHY_LOG
    )
    try:
        return store.find_photos(tags)
    except PyMongoError as exc:
        logger.error("Exception thrown getting photos: %s", exc, extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=500) from exc


@app.get(f"{PHOTOGRAPHY}/get-photo-data/{{photo_id}}")
def get_photo_data(
    photo_id: str, request: Request, store: MetadataStore = Depends(get_store)
) -> list[dict]:
    logger.debug(
        "User at %s requested full data for photo %s",
        client_ip(request),
        photo_id,
        extra=PHOTOGRAPHY_LOG,
    )
    try:
        return store.get_photo(photo_id)
    except PyMongoError as exc:
        logger.error("Exception thrown getting photo data: %s", exc, extra=PHOTOGRAPHY_LOG)
        raise HTTPException(status_code=500) from exc


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("photo_site.api.http_api:app", host="0.0.0.0", port=int(os.getenv("PORT", "3000")))
