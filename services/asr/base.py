"""Transcription provider adapter interface.

Each adapter isolates one provider's wire format. The shared `transcribe()` template drives
upload → submit → poll → fetch result → parse, converts any provider-specific failure into
`ProviderError`, and always runs `cleanup()` so uploaded files and jobs never leak.
"""

from dataclasses import dataclass
from pathlib import Path

import httpx
from loguru import logger

from config.errors import DeadlineExceeded, EmptyTranscriptError, ProviderError
from config.schemas import ProviderTranscript, Segment
from services.asr.polling import Deadline, poll_until_complete


@dataclass
class AudioSource:
    """Local audio file, optionally reachable at a public URL."""
    path: Path
    public_url: str | None = None


@dataclass
class Job:
    """Handle for a submitted provider job. `payload` is set when the provider answers synchronously."""
    id: str | None = None
    upload_ref: str | None = None
    payload: dict | None = None


class TranscriptionProvider:
    name: str = "base"
    default_model: str = ""
    requires_hosted_audio: bool = False

    def __init__(
        self,
        api_key: str,
        *,
        model: str | None = None,
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
        poll_interval: float = 3.0,
        max_poll_attempts: int = 200,
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.model = model or self.default_model
        self.base_url = (base_url or self.default_base_url()).rstrip("/")
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self._client = http_client or httpx.Client(timeout=timeout)

    def default_base_url(self) -> str:
        return ""

    # ── Provider-specific steps ──

    def upload(self, audio: AudioSource) -> str | None:
        """Make the audio available to the provider. Returns a provider reference (or None)."""
        return None

    def submit(self, audio: AudioSource, upload_ref: str | None, diarize: bool) -> Job:
        raise NotImplementedError

    def fetch_status(self, job: Job) -> tuple[str, dict]:
        """Return ('completed' | 'error' | <in-progress>, payload)."""
        raise NotImplementedError

    def fetch_result(self, job: Job, status_payload: dict) -> dict:
        return status_payload

    def parse(self, payload: dict, diarize: bool) -> ProviderTranscript:
        raise NotImplementedError

    def cleanup(self, job: Job | None, upload_ref: str | None) -> None:
        """Delete provider-side artifacts. Must not raise."""

    # ── Template ──

    def transcribe(
        self, audio: AudioSource, *, diarize: bool = True, deadline: Deadline | None = None
    ) -> ProviderTranscript:
        """Run one complete transcription; returns a full transcript or raises ProviderError."""
        upload_ref = None
        job = None
        try:
            upload_ref = self.upload(audio)
            job = self.submit(audio, upload_ref, diarize)
            payload = job.payload
            if payload is None:
                status_payload = poll_until_complete(
                    lambda: self.fetch_status(job),
                    provider=self.name,
                    interval=self.poll_interval,
                    max_attempts=self.max_poll_attempts,
                    deadline=deadline,
                )
                payload = self.fetch_result(job, status_payload)
            transcript = self.parse(payload, diarize)
        except (ProviderError, DeadlineExceeded):
            raise
        except httpx.HTTPStatusError as e:
            body = e.response.text[:300] if e.response is not None else ""
            raise ProviderError(self.name, f"HTTP {e.response.status_code}: {body}") from e
        except Exception as e:
            raise ProviderError(self.name, f"{type(e).__name__}: {e}") from e
        finally:
            try:
                self.cleanup(job, upload_ref)
            except Exception as e:
                logger.warning(f"{self.name} cleanup failed: {e}")

        if not transcript.segments:
            raise EmptyTranscriptError(self.name)
        return transcript

    def close(self) -> None:
        self._client.close()


def transcript_confidence(values: list[float | None]) -> float | None:
    scores = [v for v in values if v is not None]
    if not scores:
        return None
    return round(sum(scores) / len(scores), 4)


def make_transcript(provider: TranscriptionProvider, segments: list[Segment], **metadata) -> ProviderTranscript:
    return ProviderTranscript(provider=provider.name, model=provider.model, segments=segments, **metadata)
