from __future__ import annotations

import logging
from typing import Optional

import httpx

from src.pitchcoach.config import settings
from src.pitchcoach.domain.models.transcription import RestResponse, TranscriptionResult
from src.pitchcoach.errors import ProviderConnectionFailed
from src.pitchcoach.services.transcription.audio import pcm_to_wav

logger = logging.getLogger(__name__)


class DeepgramRestClient:
    """Single-shot transcription of a PCM buffer over the provider's REST API.

    Used when streaming is not available. Non-2xx responses propagate as
    ``httpx.HTTPStatusError``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        url: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.deepgram_api_key
        self._url = url or settings.deepgram_rest_url
        self._model = model or settings.deepgram_model
        self._client = client
        self._timeout_seconds = timeout_seconds

    async def transcribe_pcm(
        self,
        pcm: bytes,
        sample_rate: int = 16000,
        language: str = "en",
    ) -> TranscriptionResult:
        if not self._api_key:
            raise ProviderConnectionFailed("DEEPGRAM_API_KEY is not configured")

        body = pcm_to_wav(pcm, sample_rate)
        params = {
            "model": self._model,
            "language": language,
            "smart_format": "true",
            "punctuate": "true",
        }
        headers = {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": "audio/wav",
        }

        if self._client is not None:
            response = await self._client.post(self._url, params=params, headers=headers, content=body)
        else:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.post(self._url, params=params, headers=headers, content=body)

        if response.is_error:
            logger.error("REST transcription failed with status %s", response.status_code)
        response.raise_for_status()
        return RestResponse.model_validate(response.json()).to_result()
