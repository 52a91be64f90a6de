from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from omegaconf import DictConfig

from .ai_service import AIService
from .audit import AuditLog
from .configuration import get_config
from .conversion_service import ConversionService
from .converters import ConversionContext
from .database import JobDatabase
from .errors import ServiceError, Unauthorized
from .exchange_rates import ExchangeRateClient
from .job_query import JobQueryService
from .key_manager import Identity, KeyManager, parse_bearer
from .middleware import RateLimiter
from .models import (
    AIConvertRequest,
    AIConvertResponse,
    APIKeyCreate,
    APIKeyCreated,
    APIKeyInfo,
    ConversionRequest,
    ErrorResponse,
    JobListResponse,
    SubmitResponse,
    UsageResponse,
)
from .pdf_tools import PDF_MIME, PdfTools
from .usage import UsageService

config = get_config()

logging.basicConfig(
    level=str(config.log_level).upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: DictConfig
    database: JobDatabase
    keys: KeyManager
    audit: AuditLog
    conversions: ConversionService
    jobs: JobQueryService
    usage: UsageService
    ai: AIService
    pdf_tools: PdfTools
    rate_limiter: RateLimiter


def build_services(config: DictConfig, transport=None) -> Services:
    """
    Wire every service against the database named in ``config``.

    ``transport`` is handed to the outbound httpx clients; tests pass an
    ``httpx.MockTransport`` here.
    """
    database = JobDatabase(config.database_path)
    audit = AuditLog(database)
    pdf_tools = PdfTools.from_config(config)
    context = ConversionContext(
        pdf_tools=pdf_tools,
        exchange_rates=ExchangeRateClient.from_config(config, transport=transport),
    )
    conversions = ConversionService(database, context, audit=audit)
    return Services(
        config=config,
        database=database,
        keys=KeyManager(str(config.database_path)),
        audit=audit,
        conversions=conversions,
        jobs=JobQueryService(
            database,
            audit=audit,
            default_limit=int(config.default_job_limit),
            max_limit=int(config.max_job_limit),
        ),
        usage=UsageService(database, audit=audit, default_days=int(config.default_usage_days)),
        ai=AIService.from_config(config, conversions, transport=transport),
        pdf_tools=pdf_tools,
        rate_limiter=RateLimiter(requests_per_minute=int(config.rate_limit_per_minute)),
    )


services = build_services(config)

app = FastAPI(title="Conversion Backend API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_services() -> Services:
    return services


def get_identity(
    authorization: Optional[str] = Header(None),
    svc: Services = Depends(get_services),
) -> Identity:
    identity = svc.keys.resolve(parse_bearer(authorization))
    if identity is None:
        raise Unauthorized()
    return identity


def rate_limited_identity(
    identity: Identity = Depends(get_identity),
    svc: Services = Depends(get_services),
) -> Identity:
    svc.rate_limiter.check(identity.owner)
    return identity


def require_master_key(
    x_api_key: str = Header(...),
    svc: Services = Depends(get_services),
) -> None:
    master = str(svc.config.master_api_key or "")
    if not master or not secrets.compare_digest(x_api_key, master):
        raise Unauthorized()


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    provider = request.app.dependency_overrides.get(get_services, get_services)
    provider().audit.record(
        "critical",
        request.url.path,
        "Unhandled error",
        metadata={"error": repr(exc), "method": request.method},
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


ERROR_RESPONSES = {
    401: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.post(
    "/convert",
    response_model=SubmitResponse,
    response_model_exclude_none=True,
    responses={**ERROR_RESPONSES, 400: {"model": ErrorResponse}},
)
def convert(
    request: ConversionRequest,
    identity: Identity = Depends(rate_limited_identity),
    svc: Services = Depends(get_services),
):
    result = svc.conversions.submit(identity, request)
    if not result.success:
        return JSONResponse(status_code=500, content=result.model_dump(exclude_none=True))
    return result


@app.get("/jobs", response_model=JobListResponse)
def list_jobs(
    limit: Optional[int] = Query(None, ge=1),
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    identity: Identity = Depends(get_identity),
    svc: Services = Depends(get_services),
) -> JobListResponse:
    jobs = svc.jobs.list(identity, limit=limit, status=status, conversion_type=type)
    return JobListResponse(success=True, jobs=jobs, count=len(jobs))


@app.get("/usage", response_model=UsageResponse)
def usage_stats(
    days: Optional[int] = Query(None, ge=1, le=366),
    identity: Identity = Depends(get_identity),
    svc: Services = Depends(get_services),
) -> UsageResponse:
    return svc.usage.summarize(identity, days)


@app.post(
    "/ai/convert",
    response_model=AIConvertResponse,
    response_model_exclude_none=True,
    responses={**ERROR_RESPONSES, 402: {"model": ErrorResponse}},
)
def ai_convert(
    request: AIConvertRequest,
    identity: Identity = Depends(rate_limited_identity),
    svc: Services = Depends(get_services),
) -> AIConvertResponse:
    return svc.ai.convert(identity, request.type, request.content, request.options)


def _pdf_response(data: bytes, file_name: str) -> Response:
    return Response(
        content=data,
        media_type=PDF_MIME,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


def _read_upload(upload: UploadFile) -> bytes:
    data = upload.file.read()
    upload.file.close()
    return data


@app.post("/pdf/convert-to-pdf")
def convert_to_pdf(
    file: UploadFile = File(...),
    identity: Identity = Depends(rate_limited_identity),
    svc: Services = Depends(get_services),
) -> Response:
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")
    data, name = svc.pdf_tools.convert_to_pdf(_read_upload(file), file.filename)
    logger.info("Converted %s to PDF for owner %s", file.filename, identity.owner)
    return _pdf_response(data, name)


@app.post("/pdf/compress")
def compress_pdf(
    file: UploadFile = File(...),
    quality: Optional[str] = Form(None),
    identity: Identity = Depends(rate_limited_identity),
    svc: Services = Depends(get_services),
) -> Response:
    data, name = svc.pdf_tools.compress_pdf(_read_upload(file), file.filename or "input.pdf", quality)
    logger.info("Compressed %s for owner %s", file.filename, identity.owner)
    return _pdf_response(data, name)


@app.post("/pdf/merge")
def merge_pdfs(
    files: List[UploadFile] = File(...),
    identity: Identity = Depends(rate_limited_identity),
    svc: Services = Depends(get_services),
) -> Response:
    staged = [(_read_upload(upload), upload.filename or f"file-{index}.pdf") for index, upload in enumerate(files, start=1)]
    data, name = svc.pdf_tools.merge_pdfs(staged)
    logger.info("Merged %d PDFs for owner %s", len(staged), identity.owner)
    return _pdf_response(data, name)


@app.post("/admin/keys", response_model=APIKeyCreated, status_code=201, dependencies=[Depends(require_master_key)])
def create_api_key(body: APIKeyCreate, svc: Services = Depends(get_services)) -> APIKeyCreated:
    raw_key, record = svc.keys.create_key(body.owner)
    return APIKeyCreated(api_key=raw_key, record=APIKeyInfo(**record))


@app.get("/admin/keys", response_model=List[APIKeyInfo], dependencies=[Depends(require_master_key)])
def list_api_keys(svc: Services = Depends(get_services)) -> List[APIKeyInfo]:
    return [APIKeyInfo(**record) for record in svc.keys.list_keys()]


@app.delete("/admin/keys/{key_id}", dependencies=[Depends(require_master_key)])
def revoke_api_key(key_id: str, svc: Services = Depends(get_services)) -> Dict[str, str]:
    if not svc.keys.revoke_key(key_id):
        raise HTTPException(status_code=404, detail="API key not found")
    return {"status": "revoked"}
