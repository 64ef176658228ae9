"""Soniox adapter — file upload, async transcription, sub-word tokens with numeric speakers.

Soniox stores both the uploaded file and the transcription; both are deleted after every
attempt, successful or not.
"""

from loguru import logger

from config.schemas import ProviderTranscript, Token
from services.asr.base import AudioSource, Job, TranscriptionProvider, make_transcript, transcript_confidence
from services.asr.segments import build_segments


def merge_subword_tokens(raw_tokens: list[dict]) -> list[Token]:
    """Join Soniox sub-word pieces into words.

    A piece that starts with whitespace (or follows a speaker change) opens a new word;
    any other piece continues the previous word.
    """
    words: list[Token] = []
    for tok in raw_tokens:
        text = tok.get("text", "")
        if not text:
            continue
        speaker = tok.get("speaker")
        start = tok.get("start_ms", 0) / 1000.0
        end = tok.get("end_ms", tok.get("start_ms", 0)) / 1000.0
        starts_word = text[:1].isspace() or not words or words[-1].speaker != speaker
        if starts_word:
            if not text.strip():
                continue
            words.append(Token(
                text=text.strip(), start=start, end=end, speaker=speaker,
                language=tok.get("language"), confidence=tok.get("confidence"),
            ))
        else:
            prev = words[-1]
            words[-1] = prev.model_copy(update={"text": prev.text + text.rstrip(), "end": end})
    return words


class SonioxProvider(TranscriptionProvider):
    name = "soniox"
    default_model = "stt-async-v3"

    def __init__(self, api_key: str, *, language_hints: list[str] | None = None, **kwargs):
        super().__init__(api_key, **kwargs)
        self.language_hints = language_hints or ["en"]

    def default_base_url(self) -> str:
        return "https://api.soniox.com"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    def upload(self, audio: AudioSource) -> str:
        with open(audio.path, "rb") as f:
            resp = self._client.post(
                f"{self.base_url}/v1/files",
                headers=self._headers(),
                files={"file": (audio.path.name, f)},
            )
        resp.raise_for_status()
        return resp.json()["id"]

    def submit(self, audio: AudioSource, upload_ref: str | None, diarize: bool) -> Job:
        resp = self._client.post(
            f"{self.base_url}/v1/transcriptions",
            headers=self._headers(),
            json={
                "model": self.model,
                "file_id": upload_ref,
                "language_hints": self.language_hints,
                "enable_language_identification": True,
                "enable_speaker_diarization": diarize,
            },
        )
        resp.raise_for_status()
        return Job(id=resp.json()["id"], upload_ref=upload_ref)

    def fetch_status(self, job: Job) -> tuple[str, dict]:
        resp = self._client.get(f"{self.base_url}/v1/transcriptions/{job.id}", headers=self._headers())
        resp.raise_for_status()
        data = resp.json()
        return data.get("status", "processing"), data

    def fetch_result(self, job: Job, status_payload: dict) -> dict:
        resp = self._client.get(
            f"{self.base_url}/v1/transcriptions/{job.id}/transcript", headers=self._headers()
        )
        resp.raise_for_status()
        return {**resp.json(), "audio_duration_ms": status_payload.get("audio_duration_ms")}

    def parse(self, payload: dict, diarize: bool) -> ProviderTranscript:
        # Translation tokens duplicate the original speech
        raw = [t for t in payload.get("tokens") or [] if t.get("translation_status") != "translation"]
        if not diarize:
            raw = [{**t, "speaker": None} for t in raw]
        words = merge_subword_tokens(raw)
        segments = build_segments(words)
        languages = [w.language for w in words if w.language]
        duration_ms = payload.get("audio_duration_ms")
        if not duration_ms and words:
            duration_ms = words[-1].end * 1000
        return make_transcript(
            self,
            segments,
            duration=(duration_ms or 0) / 1000.0,
            language=max(set(languages), key=languages.count) if languages else None,
            confidence=transcript_confidence([w.confidence for w in words]),
        )

    def cleanup(self, job: Job | None, upload_ref: str | None) -> None:
        if job is not None and job.id:
            try:
                self._client.delete(
                    f"{self.base_url}/v1/transcriptions/{job.id}", headers=self._headers()
                ).raise_for_status()
            except Exception as e:
                logger.warning(f"soniox: failed to delete transcription {job.id}: {e}")
        if upload_ref:
            try:
                self._client.delete(
                    f"{self.base_url}/v1/files/{upload_ref}", headers=self._headers()
                ).raise_for_status()
            except Exception as e:
                logger.warning(f"soniox: failed to delete file {upload_ref}: {e}")
