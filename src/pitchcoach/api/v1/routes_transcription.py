from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.pitchcoach.domain.models.transcription import TranscriptionResult
from src.pitchcoach.errors import InvalidAudioChunk, ProviderConnectionFailed
from src.pitchcoach.security import get_api_key
from src.pitchcoach.services.audit.service import audit_service
from src.pitchcoach.services.transcription.audio import validate_audio_chunk
from src.pitchcoach.services.transcription.rest import DeepgramRestClient
from src.pitchcoach.tenancy import tenant_dependency

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/transcriptions",
    tags=["transcription"],
    dependencies=[Depends(get_api_key), Depends(tenant_dependency)],
)


def get_rest_client() -> DeepgramRestClient:
    return DeepgramRestClient()


@router.post("/pcm", response_model=TranscriptionResult)
async def transcribe_pcm(
    request: Request,
    sample_rate: int = 16000,
    language: str = "en",
    client: DeepgramRestClient = Depends(get_rest_client),
) -> TranscriptionResult:
    """Transcribe a raw 16-bit mono PCM request body in one shot.

    Fallback for clients that cannot hold a live connection open.
    """

    try:
        pcm = validate_audio_chunk(await request.body())
    except InvalidAudioChunk as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        result = await client.transcribe_pcm(pcm, sample_rate=sample_rate, language=language)
    except ProviderConnectionFailed as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except httpx.HTTPStatusError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Transcription provider returned {exc.response.status_code}",
        ) from exc
    except httpx.HTTPError as exc:
        logger.error("REST transcription request failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Transcription provider unreachable") from exc

    audit_service.log_event(
        action="transcribe_pcm",
        resource_type="transcription",
        extra={"bytes": len(pcm), "sample_rate": sample_rate},
    )

    return result
