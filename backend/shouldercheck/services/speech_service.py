"""
Speech service
Text-to-audio for spoken instructions; announcements never block the frame loop
"""

import asyncio
from collections import deque
from typing import Callable, Deque, Optional, Set

from openai import AsyncOpenAI

from shouldercheck.config.base import settings
from shouldercheck.errors import SpeechSynthesisError
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)


class SpeechService:
    """
    OpenAI text-to-speech client.

    synthesize() returns MPEG audio bytes. announce() schedules synthesis as a
    detached task and hands the audio to the sink; failures are logged only.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        sink: Optional[Callable[[str, bytes], None]] = None,
        model: Optional[str] = None,
        voice: Optional[str] = None,
        max_pending: int = 8,
    ):
        self.client = client or AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
        )
        self.model = model or settings.TTS_MODEL
        self.voice = voice or settings.TTS_VOICE
        self.pending_audio: Deque[tuple] = deque(maxlen=max_pending)
        self._sink = sink or self._queue_audio
        self._tasks: Set[asyncio.Task] = set()

    def for_session(self) -> "SpeechService":
        """Separate announcement queue sharing this HTTP client"""
        return SpeechService(client=self.client, model=self.model, voice=self.voice, max_pending=self.pending_audio.maxlen)

    def _queue_audio(self, text: str, audio: bytes) -> None:
        self.pending_audio.append((text, audio))

    async def synthesize(self, text: str) -> bytes:
        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
            )
            return response.content
        except Exception as e:
            raise SpeechSynthesisError(
                f"Text-to-speech failed: {e}",
                details={"exception_type": type(e).__name__},
            ) from e

    async def _announce(self, text: str) -> None:
        try:
            audio = await self.synthesize(text)
            self._sink(text, audio)
        except SpeechSynthesisError as e:
            logger.warning(f"🔇 {e.message}")
        except Exception as e:
            logger.error(f"🔇 Audio sink failed: {e}")

    def announce(self, text: str) -> asyncio.Task:
        """Fire-and-forget; must be called from the event loop thread"""
        task = asyncio.get_running_loop().create_task(self._announce(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def pop_audio(self) -> Optional[tuple]:
        """Oldest queued (text, audio) pair, if any"""
        return self.pending_audio.popleft() if self.pending_audio else None

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
