from __future__ import annotations

import logging
import os
import re
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.config import get_settings
from app.errors import StudioError
from app.middlewares.body_guard import BodyGuardMiddleware
from app.models import RequestState
from app.models.payloads import MAX_OUTPUTS
from app.models.state import new_request_id
from app.schemas import (
    AdGenerationRequest,
    AnalysisPayload,
    ErrorResponse,
    GenerationResponse,
    PromptSuggestionRequest,
    PromptSuggestionResponse,
    SimpleImageRequest,
    TemplateCollection,
    TemplatePhotoRequest,
)
from app.services.image_input import ImageInput, read_upload
from app.services.pipeline import StudioPipeline
from app.templates import catalog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# uvicorn 日志级别统一
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.error").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
logging.getLogger("product-studio").setLevel(LOG_LEVEL)

logger = logging.getLogger("product-studio")
app = FastAPI(title="Product Studio API", version="1.0.0")

settings = get_settings()

_REQUEST_ID_RX = re.compile(r"^[0-9A-Za-z_-]{1,64}$")

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status: {"model": ErrorResponse} for status in (400, 404, 415, 500, 502, 503)
}


# 首页：GET/HEAD 200
@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {"service": "product-studio", "ok": True}


@app.head("/", include_in_schema=False)
def root_head() -> Response:
    # HEAD 按规范不返回 body
    return Response(status_code=200)


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


# ------------------------------------------------------------------------------
# 中间件
# ------------------------------------------------------------------------------

app.add_middleware(BodyGuardMiddleware, max_body_bytes=settings.guard.max_body_bytes)
logger.info("BodyGuardMiddleware ready", extra={"max_body_bytes": settings.guard.max_body_bytes})

allow_all = "*" in settings.allowed_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else settings.allowed_origins,
    allow_credentials=not allow_all,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
    max_age=86400,
)


@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    incoming = (request.headers.get("x-request-id") or "").strip()
    rid = incoming if _REQUEST_ID_RX.match(incoming) else new_request_id()
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


def _request_id(request: Request) -> str:
    rid = getattr(request.state, "request_id", None)
    if not rid:
        rid = new_request_id()
        request.state.request_id = rid
    return rid


# ------------------------------------------------------------------------------
# 错误处理
# ------------------------------------------------------------------------------


@app.exception_handler(StudioError)
async def handle_studio_error(request: Request, exc: StudioError) -> JSONResponse:
    rid = _request_id(request)
    level = logging.INFO if exc.category == "input" else logging.WARNING
    logger.log(
        level,
        "[http] rid=%s %s %s -> %s %s",
        rid,
        request.method,
        request.url.path,
        exc.status_code,
        exc.code,
        extra={"retryable": exc.retryable, "fatal": exc.fatal},
    )
    payload = exc.to_payload()
    payload["requestId"] = rid
    return JSONResponse(status_code=exc.status_code, content=payload, headers={"X-Request-ID": rid})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    rid = _request_id(request)
    logger.exception("[http] rid=%s unhandled error on %s", rid, request.url.path)
    payload = {
        "success": False,
        "error": "An unexpected error occurred. Please try again.",
        "code": "internal_error",
        "category": "support",
        "type": "generic",
        "retryable": False,
        "fatal": False,
        "suggestions": [
            "Try again in a few moments.",
            "If the problem persists, please contact support.",
        ],
        "requestId": rid,
    }
    return JSONResponse(status_code=500, content=payload, headers={"X-Request-ID": rid})


# ------------------------------------------------------------------------------
# 静态结果目录
# ------------------------------------------------------------------------------

try:
    settings.storage.result_dir.mkdir(parents=True, exist_ok=True)
except OSError as exc:  # pragma: no cover - read-only deployments
    logger.warning("Result directory %s unavailable: %s", settings.storage.result_dir, exc)

app.mount(
    settings.storage.public_prefix,
    StaticFiles(directory=str(settings.storage.result_dir), check_dir=False),
    name="uploads",
)


# ------------------------------------------------------------------------------
# 依赖
# ------------------------------------------------------------------------------


def get_pipeline() -> StudioPipeline:
    """Build a pipeline over the current settings; overridden in tests."""

    return StudioPipeline(get_settings())


def _data_url_input(value: Optional[str], filename: str) -> Optional[ImageInput]:
    if value is None:
        return None
    return ImageInput(data_url=value, filename=filename)


def _generation_response(state: RequestState) -> GenerationResponse:
    urls = list(state.image_urls)
    analysis = state.analysis
    return GenerationResponse(
        image_url=urls[0],
        image_urls=urls,
        analysis=AnalysisPayload(**analysis.to_payload()) if analysis is not None else None,
        analysis_degraded=analysis.degraded if analysis is not None else None,
        prompt=state.prompt,
        request_id=state.request_id,
    )


# ------------------------------------------------------------------------------
# 目录
# ------------------------------------------------------------------------------


def _collection(kind: str) -> TemplateCollection:
    return TemplateCollection(items=catalog.list_entries(kind))


@app.get("/api/templates", response_model=TemplateCollection)
def list_templates() -> TemplateCollection:
    return _collection("template")


@app.get("/api/wireframes", response_model=TemplateCollection)
def list_wireframes() -> TemplateCollection:
    return _collection("wireframe")


# ------------------------------------------------------------------------------
# 生成
# ------------------------------------------------------------------------------


@app.post(
    "/api/generate-studio-photo",
    response_model=GenerationResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
def generate_studio_photo(
    request: Request,
    image: Optional[UploadFile] = File(None),
    image_data_url: Optional[str] = Form(None, alias="imageDataUrl"),
    prompt: Optional[str] = Form(None),
    skip_analysis: bool = Form(False, alias="skipAnalysis"),
    num_outputs: int = Form(1, alias="numOutputs", ge=1, le=MAX_OUTPUTS),
    template_id: Optional[str] = Form(None, alias="templateId"),
    pipeline: StudioPipeline = Depends(get_pipeline),
) -> GenerationResponse:
    rid = _request_id(request)

    raw: Optional[ImageInput] = None
    if image is not None:
        data = read_upload(image.file)
        if data or image.filename:
            raw = ImageInput(data=data, content_type=image.content_type, filename=image.filename)
    elif image_data_url and image_data_url.strip():
        raw = ImageInput(data_url=image_data_url, filename="upload")

    logger.info(
        "[http] rid=%s generate-studio-photo has_image=%s skip_analysis=%s outputs=%d prompt_len=%d",
        rid,
        raw is not None,
        skip_analysis,
        num_outputs,
        len(prompt or ""),
    )
    state = pipeline.run_studio(
        image=raw,
        prompt=prompt,
        skip_analysis=skip_analysis,
        num_outputs=num_outputs,
        template_id=(template_id or "").strip() or None,
        request_id=rid,
    )
    return _generation_response(state)


@app.post(
    "/api/generate-ad",
    response_model=GenerationResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
def generate_ad(
    request: Request,
    payload: AdGenerationRequest,
    pipeline: StudioPipeline = Depends(get_pipeline),
) -> GenerationResponse:
    rid = _request_id(request)
    logger.info(
        "[http] rid=%s generate-ad wireframe=%s outputs=%d",
        rid,
        payload.wireframe_id or ("inline" if payload.wireframe_image else None),
        payload.num_outputs,
    )
    state = pipeline.run_composition(
        "wireframe",
        product=_data_url_input(payload.product_image, "product"),
        reference_id=payload.wireframe_id,
        reference_image=_data_url_input(payload.wireframe_image, "wireframe"),
        prompt=payload.prompt,
        ad_copy=payload.ad_copy,
        skip_analysis=payload.skip_analysis,
        num_outputs=payload.num_outputs,
        request_id=rid,
    )
    return _generation_response(state)


@app.post(
    "/api/generate-template-photo",
    response_model=GenerationResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
def generate_template_photo(
    request: Request,
    payload: TemplatePhotoRequest,
    pipeline: StudioPipeline = Depends(get_pipeline),
) -> GenerationResponse:
    rid = _request_id(request)
    logger.info(
        "[http] rid=%s generate-template-photo template=%s outputs=%d",
        rid,
        payload.template_id or ("inline" if payload.template_image else None),
        payload.num_outputs,
    )
    state = pipeline.run_composition(
        "template",
        product=_data_url_input(payload.product_image, "product"),
        reference_id=payload.template_id,
        reference_image=_data_url_input(payload.template_image, "template"),
        prompt=payload.prompt,
        skip_analysis=payload.skip_analysis,
        num_outputs=payload.num_outputs,
        request_id=rid,
    )
    return _generation_response(state)


@app.post(
    "/api/generate-image",
    response_model=GenerationResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
def generate_image(
    request: Request,
    payload: SimpleImageRequest,
    pipeline: StudioPipeline = Depends(get_pipeline),
) -> GenerationResponse:
    rid = _request_id(request)
    logger.info("[http] rid=%s generate-image outputs=%d", rid, payload.num_outputs)
    state = pipeline.run_simple(prompt=payload.prompt, num_outputs=payload.num_outputs, request_id=rid)
    return _generation_response(state)


@app.post("/api/generate-prompt", response_model=PromptSuggestionResponse, responses=ERROR_RESPONSES)
def generate_prompt(
    request: Request,
    payload: PromptSuggestionRequest,
    pipeline: StudioPipeline = Depends(get_pipeline),
) -> PromptSuggestionResponse:
    rid = _request_id(request)
    text = pipeline.write_prompt(
        product=_data_url_input(payload.product_image, "product"),
        reference=_data_url_input(payload.reference_image, "reference"),
        request_id=rid,
    )
    return PromptSuggestionResponse(prompt=text, request_id=rid)
