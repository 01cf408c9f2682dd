"""
Speech Synthesizer

Cache-through text-to-speech. ``synthesize(text, voice_mode, tone)``
returns stored audio when the same request has been synthesized before,
and otherwise marks the text up, perturbs the voice profile, calls the
vendor exactly once and persists the result.

Vendor failures propagate as SynthesisError. Cache failures never do.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, Dict, Optional

import httpx

from .errors import CacheIOError, SynthesisError
from .narration_types import NarrationUnit
from .speech_cache import SpeechCache
from .voice_markup import (
    VOICE_PROFILES,
    add_human_variation,
    enhance_text,
    resolve_voice_mode,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.elevenlabs.io"
DEFAULT_VOICE_ID = "piTKgcLEGmPE4e6mEKli"
DEFAULT_MODEL_ID = "eleven_multilingual_v2"
DEFAULT_TIMEOUT_SECONDS = 30.0


class SpeechVendor:
    """Interface for anything that turns SSML plus voice settings into audio bytes."""

    async def synthesize(self, ssml: str, voice_settings: Dict[str, object]) -> bytes:
        raise NotImplementedError


class ElevenLabsVendor(SpeechVendor):
    """
    ElevenLabs text-to-speech over HTTP.

    Args:
        api_key: ``xi-api-key`` credential. Empty means unconfigured; every
            call then fails before touching the network.
        client: Optional shared ``httpx.AsyncClient`` (tests pass one built
            on ``httpx.MockTransport``). When omitted a client is opened per
            request.
    """

    def __init__(
        self,
        api_key: Optional[str],
        voice_id: str = DEFAULT_VOICE_ID,
        model_id: str = DEFAULT_MODEL_ID,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or ""
        self.voice_id = voice_id
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/v1/text-to-speech/{self.voice_id}"

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        return await client.post(
            self.endpoint,
            headers={
                "xi-api-key": self.api_key,
                "Content-Type": "application/json",
                "Accept": "audio/mpeg",
            },
            json=payload,
        )

    async def synthesize(self, ssml: str, voice_settings: Dict[str, object]) -> bytes:
        if not self.is_configured:
            raise SynthesisError("ElevenLabs API key is not configured")

        payload = {
            "text": ssml,
            "model_id": self.model_id,
            "voice_settings": voice_settings,
        }

        try:
            if self._client is not None:
                resp = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await self._post(client, payload)
        except httpx.HTTPError as e:
            raise SynthesisError(f"Speech vendor unreachable: {e}") from e

        if resp.status_code != 200:
            raise SynthesisError(
                f"Speech vendor returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        if not resp.content:
            raise SynthesisError("Speech vendor returned no audio", status_code=resp.status_code)

        return resp.content


class SpeechSynthesizer:
    """
    Cache-through synthesis with duplicate-call suppression.

    Concurrent misses for the same key share one in-flight vendor call.

    Args:
        vendor: The SpeechVendor to call on a miss.
        cache: SpeechCache, or None to disable caching.
        random_source: ``() -> float`` in [0, 1) for the voice-parameter
            perturbation. Defaults to ``random.random``.
    """

    def __init__(
        self,
        vendor: SpeechVendor,
        cache: Optional[SpeechCache] = None,
        random_source: Optional[Callable[[], float]] = None,
    ):
        self.vendor = vendor
        self.cache = cache
        self._random = random_source or random.random
        self._in_flight: Dict[str, asyncio.Future] = {}
        self.vendor_calls = 0
        self.cache_hits = 0

    def narration_unit(self, text: str, voice_mode: Optional[str] = None, tone: Optional[str] = None) -> NarrationUnit:
        """
        Canonical request descriptor; its hash is the cache key.

        The key covers the text, the resolved voice mode and the tone with
        ``"neutral"`` filled in, not the arguments as spelled. So
        ``"DRAMATIC_NARRATOR"``, ``"dramaticNarrator"`` and
        ``"dramatic_narrator"`` share an entry, and an absent or unknown
        mode shares the entry of the mode auto-selection picks for the text.
        """
        mode = resolve_voice_mode(text, voice_mode)
        return NarrationUnit(text=text, voice_mode=mode.value, tone=tone or "neutral")

    def cache_key(self, text: str, voice_mode: Optional[str] = None, tone: Optional[str] = None) -> str:
        """SHA-256 of the canonical (text, resolved mode, tone) request."""
        return self.narration_unit(text, voice_mode, tone).cache_key()

    def _read_cache(self, key: str) -> Optional[bytes]:
        if self.cache is None:
            return None
        try:
            return self.cache.get(key)
        except CacheIOError as e:
            logger.warning("Speech cache read failed, treating as miss: %s", e)
            return None

    def _write_cache(self, key: str, audio: bytes) -> None:
        if self.cache is None:
            return
        try:
            self.cache.put(key, audio)
        except CacheIOError as e:
            logger.warning("Speech cache write failed; returning audio uncached: %s", e)

    async def synthesize(self, text: str, voice_mode: Optional[str] = None, tone: Optional[str] = None) -> bytes:
        """
        Audio bytes for ``text`` in the given voice mode and tone.

        Raises:
            SynthesisError: The vendor failed and no cached copy exists.
        """
        unit = self.narration_unit(text, voice_mode, tone)
        key = unit.cache_key()

        cached = self._read_cache(key)
        if cached is not None:
            self.cache_hits += 1
            return cached

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("Joining in-flight synthesis for %s", key)
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            audio = await self._call_vendor(unit)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # mark retrieved so an unjoined failure is not reported as unhandled
            future.exception()
            raise
        else:
            self._write_cache(key, audio)
            future.set_result(audio)
            return audio
        finally:
            self._in_flight.pop(key, None)

    async def _call_vendor(self, unit: NarrationUnit) -> bytes:
        profile = VOICE_PROFILES[resolve_voice_mode(unit.text, unit.voice_mode)]
        ssml = enhance_text(unit.text, unit.tone)
        settings = add_human_variation(profile, self._random)

        self.vendor_calls += 1
        logger.info("Synthesizing %d chars (mode=%s, tone=%s)", len(unit.text), unit.voice_mode, unit.tone)
        try:
            return await self.vendor.synthesize(ssml, settings)
        except SynthesisError as e:
            logger.error("Speech synthesis failed: %s", e)
            raise

    def stats(self) -> dict:
        return {
            "vendor_calls": self.vendor_calls,
            "cache_hits": self.cache_hits,
            "in_flight": len(self._in_flight),
        }
