# deepguard/api/v1/routes_scan.py
import dataclasses
import os
import shutil
import tempfile

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from deepguard.core.config import Settings, get_settings
from deepguard.core.schemas import ErrorDescriptor, ErrorResponse, FrameAnalysisRequest, Verdict
from deepguard.detectors.frames import FrameSampler, FrameSet, VideoSource
from deepguard.detectors.gateway import InferenceGateway, get_gateway
from deepguard.services.pipeline import INVALID_MEDIA, PipelineOrchestrator

router = APIRouter(tags=["scan"])

STATUS_BY_CODE = {
    "invalid_media": status.HTTP_400_BAD_REQUEST,
    "rate_limited": status.HTTP_429_TOO_MANY_REQUESTS,
    "quota_exceeded": status.HTTP_402_PAYMENT_REQUIRED,
    "busy": status.HTTP_409_CONFLICT,
    "media_load": 422,
    "seek_timeout": 422,
    "empty_frames": 422,
    "gateway": status.HTTP_502_BAD_GATEWAY,
    "inference_timeout": status.HTTP_504_GATEWAY_TIMEOUT,
}

ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in sorted(set(STATUS_BY_CODE.values()) | {500})
}


def error_response(error: ErrorDescriptor) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={"error": error.message},
    )


def get_sampler(settings: Settings = Depends(get_settings)) -> FrameSampler:
    return FrameSampler.from_settings(settings)


def get_orchestrator(
    sampler: FrameSampler = Depends(get_sampler),
    gateway: InferenceGateway = Depends(get_gateway),
) -> PipelineOrchestrator:
    # One orchestrator per request: submissions never share pipeline state.
    return PipelineOrchestrator(sampler, gateway)


@router.post("/scan", response_model=Verdict, responses=ERROR_RESPONSES)
async def scan_video(
    file: UploadFile = File(...),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    source = VideoSource(path=file.filename or "", content_type=file.content_type or "")
    if not source.is_video:
        return error_response(ErrorDescriptor(code="invalid_media", message=INVALID_MEDIA))

    # OpenCV needs a real path; spool the upload and drop it afterwards.
    suffix = os.path.splitext(file.filename or "")[1] or ".mp4"
    tmp = tempfile.NamedTemporaryFile(suffix=suffix, delete=False)
    spooled_path = tmp.name
    try:
        with tmp:
            await run_in_threadpool(shutil.copyfileobj, file.file, tmp)
        outcome = await orchestrator.analyze(dataclasses.replace(source, path=spooled_path))
    finally:
        os.remove(spooled_path)

    if not outcome.ok:
        return error_response(outcome.error)
    return outcome.verdict


@router.post("/analyze-frames", response_model=Verdict, responses=ERROR_RESPONSES)
async def analyze_frames(
    req: FrameAnalysisRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    if not req.frames:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "No frames provided"},
        )

    try:
        frames = FrameSet.from_data_urls(req.frames)
    except ValueError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": str(e)},
        )

    outcome = await orchestrator.analyze_frames(frames)
    if not outcome.ok:
        return error_response(outcome.error)
    return outcome.verdict
