"""
Affirmation API Routes.

Endpoints:
    POST /v1/select                      - choose lines for a goal and intention
    POST /v1/sessions                    - select, persist and voice a session
    PUT  /v1/sessions/{id}/lines         - replace a session's ordered lines
    GET  /v1/sessions/{id}/playlist      - playlist manifest (always 200)
    POST /v1/sessions/{id}/feedback      - listener rating for a session
    POST /v1/audio/resolve               - resolve audio for one line
    GET  /v1/audio/{cache_key}           - serve a stored audio artifact
    GET  /health                         - health and storage summary
    GET  /metrics                        - Prometheus metrics

The caller's access tier is read from the ``X-Access-Tier`` header
(``free`` or ``pro``); it decides which voices may be used.

Error Handling:
    All errors are returned as JSON:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>"
    }
    with the HTTP status taken from core.errors.HTTP_STATUS.
"""
from __future__ import annotations

import re
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.responses import FileResponse, JSONResponse

from affirm_ms.api.dependencies import get_affirm_service
from affirm_ms.api.schemas import (
    AudioResolutionOut,
    FeedbackRequest,
    FeedbackResponse,
    LineStatusOut,
    ReplaceLinesRequest,
    ResolveAudioRequest,
    SelectedLineOut,
    SelectRequest,
    SelectResponse,
    SessionRequest,
    SessionResponse,
)
from affirm_ms.core.errors import HTTP_STATUS, AffirmError, ErrorCode
from affirm_ms.core.logging import error, get_logger, set_request_id
from affirm_ms.core.metrics import metrics
from affirm_ms.services.affirm_service import AffirmService

router = APIRouter()

_LOG = get_logger("affirm-ms.api")

_CACHE_KEY = re.compile(r"^[0-9a-f]{64}$")


def _request_id() -> str:
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


def _error_response(err: AffirmError) -> JSONResponse:
    return JSONResponse(status_code=HTTP_STATUS.get(err.code, 500), content=err.to_dict())


def _internal_error(rid: str, exc: Exception) -> JSONResponse:
    # Details go to the log only
    error(_LOG, "unhandled_error", error=type(exc).__name__, detail=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": rid,
        },
    )


@router.post("/v1/select", response_model=SelectResponse)
def select_lines(req: SelectRequest, service: AffirmService = Depends(get_affirm_service)):
    """
    Choose lines for a goal and intention without creating a session.

    The response names the tier that served the request (exact, pooled,
    generated or fallback), its confidence and its cost.
    """
    rid = _request_id()
    try:
        outcome = service.select(req.goal, req.intention, req.count, req.is_first_session)
        return SelectResponse(
            tier=outcome.tier,
            confidence=outcome.confidence,
            cost=outcome.cost,
            goal=outcome.goal,
            intention=outcome.intention,
            themes=outcome.themes,
            lines=[SelectedLineOut(id=line.id, text=line.text, source=line.source) for line in outcome.lines],
        )
    except AffirmError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(rid, e)


@router.post("/v1/sessions", response_model=SessionResponse)
def create_session(
    req: SessionRequest,
    service: AffirmService = Depends(get_affirm_service),
    x_access_tier: Optional[str] = Header(default=None),
):
    """
    Generate a session: select lines, store them in order and resolve audio
    for each one. Lines whose audio failed carry an ``error`` code; the
    session is still created.
    """
    rid = _request_id()
    try:
        result = service.create_session(
            goal=req.goal,
            intention=req.intention,
            count=req.count,
            is_first_session=req.is_first_session,
            voice_id=req.voice_id,
            tier=x_access_tier,
            silence_between_ms=req.silence_between_ms,
        )
        return SessionResponse(
            session_id=result.session_id,
            goal=result.goal,
            voice_id=result.voice_id,
            tier=result.tier,
            confidence=result.confidence,
            cost=result.cost,
            silence_between_ms=result.silence_between_ms,
            lines=[
                LineStatusOut(
                    id=line.id,
                    text=line.text,
                    position=line.position,
                    audio_url=line.audio_url,
                    duration_ms=line.duration_ms,
                    cache=line.cache,
                    error=line.error,
                )
                for line in result.lines
            ],
        )
    except AffirmError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(rid, e)


@router.put("/v1/sessions/{session_id}/lines")
def replace_lines(
    session_id: str,
    req: ReplaceLinesRequest,
    service: AffirmService = Depends(get_affirm_service),
):
    rid = _request_id()
    try:
        service.replace_session_lines(session_id, req.affirmation_ids)
        return {"ok": True, "sessionId": session_id, "lines": len(req.affirmation_ids)}
    except AffirmError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(rid, e)


@router.get("/v1/sessions/{session_id}/playlist")
def get_playlist(
    session_id: str,
    request: Request,
    voice_id: Optional[str] = None,
    service: AffirmService = Depends(get_affirm_service),
    x_access_tier: Optional[str] = Header(default=None),
):
    """
    Playlist manifest for a session.

    Always answers 200: a missing session, a built-in ``default-`` session
    or a session without audio yields an empty manifest, and the client
    plays background layers only.
    """
    rid = _request_id()
    try:
        manifest = service.get_playlist(
            session_id,
            voice_id=voice_id,
            tier=x_access_tier,
            base_url=str(request.base_url),
        )
        return manifest.to_dict()
    except Exception as e:
        return _internal_error(rid, e)


@router.post("/v1/sessions/{session_id}/feedback", response_model=FeedbackResponse)
def session_feedback(
    session_id: str,
    req: FeedbackRequest,
    service: AffirmService = Depends(get_affirm_service),
):
    rid = _request_id()
    try:
        result = service.record_feedback(session_id, req.rating, req.replayed)
        return FeedbackResponse(session_id=result.session_id, updated=result.updated, tier=result.tier)
    except AffirmError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(rid, e)


@router.post("/v1/audio/resolve", response_model=AudioResolutionOut)
def resolve_audio(
    req: ResolveAudioRequest,
    service: AffirmService = Depends(get_affirm_service),
    x_access_tier: Optional[str] = Header(default=None),
):
    """
    Resolve durable audio for one line and voice.

    Repeated calls with the same text, voice, goal and pace return the
    same audio without calling the speech provider again.
    """
    rid = _request_id()
    try:
        res = service.resolve_audio(
            affirmation_id=req.affirmation_id,
            text=req.text,
            voice_id=req.voice_id,
            goal=req.goal,
            pace=req.pace,
            tier=x_access_tier,
        )
        return AudioResolutionOut(
            affirmation_id=res.affirmation_id,
            voice_id=res.voice_id,
            audio_url=res.audio_url,
            duration_ms=res.duration_ms,
            cache_key=res.cache_key,
            cache=res.cache,
        )
    except AffirmError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(rid, e)


@router.get("/v1/audio/{cache_key}")
def get_audio(cache_key: str, service: AffirmService = Depends(get_affirm_service)):
    if not _CACHE_KEY.match(cache_key):
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": ErrorCode.INVALID_INPUT, "message": "malformed cache key"},
        )
    artifact = service.store.find(cache_key)
    if artifact is None:
        return JSONResponse(
            status_code=404,
            content={"ok": False, "error": ErrorCode.NOT_FOUND, "message": "audio not found"},
        )
    return FileResponse(
        artifact.path,
        media_type=artifact.media_type,
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )


@router.get("/health")
def health(service: AffirmService = Depends(get_affirm_service)):
    """Health check: provider, generator availability and storage counts."""
    return service.health()


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
