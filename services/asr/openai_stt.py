"""OpenAI transcription adapter — synchronous upload-and-transcribe via the openai SDK.

The API returns no speaker labels, so diarized-mono recordings fall back to the role
resolver's alternation; dual-channel recordings get explicit roles from the orchestrator.
Recordings longer than CHUNK_SECONDS are cut into chunks, transcribed one by one and
stitched back onto a single timeline.
"""

import re
import tempfile
from pathlib import Path

from loguru import logger
from openai import OpenAI

from config.schemas import ProviderTranscript, Token
from services.asr.base import AudioSource, Job, TranscriptionProvider, make_transcript
from services.asr.segments import build_segments
from services.audio.channels import probe_duration, split_into_chunks


# Models that support verbose_json with word timestamps
VERBOSE_MODELS = {"whisper-1"}

CHUNK_SECONDS = 300.0

_SENTENCE = re.compile(r"[^.!?]+(?:[.!?]+|$)")


def _as_dict(response) -> dict:
    if isinstance(response, dict):
        return dict(response)
    if hasattr(response, "model_dump"):
        return response.model_dump()
    return dict(response)


def sentence_tokens(text: str, duration: float, offset: float = 0.0, language: str | None = None) -> list[Token]:
    """Split untimed text into one token per sentence, spreading the duration evenly."""
    sentences = [s.strip() for s in _SENTENCE.findall(text or "") if s.strip()]
    if not sentences:
        return []
    step = duration / len(sentences)
    return [
        Token(text=s, start=offset + i * step, end=offset + (i + 1) * step, language=language)
        for i, s in enumerate(sentences)
    ]


def _chunk_tokens(payload: dict, offset: float, language: str | None) -> list[Token]:
    words = payload.get("words") or []
    if words:
        return [
            Token(text=w["word"], start=offset + w["start"], end=offset + w["end"], language=language)
            for w in words
        ]
    if payload.get("segments"):
        return [
            Token(text=s["text"], start=offset + s["start"], end=offset + s["end"], language=language)
            for s in payload["segments"]
        ]
    # json-only models return plain text without timing
    return sentence_tokens(payload.get("text") or "", float(payload.get("duration") or 0.0), offset, language)


class OpenAITranscriptionProvider(TranscriptionProvider):
    name = "openai"
    default_model = "whisper-1"

    def __init__(self, api_key: str, *, openai_client: OpenAI | None = None, timeout: float = 300.0, **kwargs):
        super().__init__(api_key, timeout=timeout, **kwargs)
        self._openai = openai_client or OpenAI(api_key=api_key, timeout=timeout)

    def _request_params(self) -> dict:
        params = {"model": self.model}
        if self.model in VERBOSE_MODELS:
            params["response_format"] = "verbose_json"
            params["timestamp_granularities"] = ["word", "segment"]
        else:
            params["response_format"] = "json"
        return params

    def _transcribe_file(self, path: Path) -> dict:
        with open(path, "rb") as f:
            return _as_dict(self._openai.audio.transcriptions.create(file=f, **self._request_params()))

    def submit(self, audio: AudioSource, upload_ref: str | None, diarize: bool) -> Job:
        duration = probe_duration(audio.path)
        if duration <= CHUNK_SECONDS:
            payload = self._transcribe_file(audio.path)
            if not payload.get("duration") and duration:
                payload["duration"] = duration
            return Job(payload=payload)

        logger.info(f"{self.name}: {duration:.1f}s recording, transcribing in {CHUNK_SECONDS:.0f}s chunks")
        chunks = []
        with tempfile.TemporaryDirectory(prefix="convoqa_chunks_") as workdir:
            for path, offset in split_into_chunks(audio.path, workdir, CHUNK_SECONDS, duration):
                result = self._transcribe_file(path)
                if not result.get("duration"):
                    result["duration"] = min(CHUNK_SECONDS, duration - offset)
                chunks.append({"offset": offset, "result": result})
        return Job(payload={"chunks": chunks, "duration": duration})

    def parse(self, payload: dict, diarize: bool) -> ProviderTranscript:
        chunks = payload.get("chunks") or [{"offset": 0.0, "result": payload}]
        language = next((c["result"].get("language") for c in chunks if c["result"].get("language")), None)

        tokens = []
        for chunk in chunks:
            tokens += _chunk_tokens(chunk["result"], chunk["offset"], language)

        segments = build_segments(tokens)
        duration = float(payload.get("duration") or 0.0)
        if not duration and tokens:
            duration = tokens[-1].end
        return make_transcript(self, segments, duration=duration, language=language)

    def close(self) -> None:
        super().close()
        self._openai.close()
