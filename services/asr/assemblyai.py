"""AssemblyAI adapter — binary upload, async transcript job, word-level speaker letters."""

from config.schemas import ProviderTranscript, Token
from services.asr.base import AudioSource, Job, TranscriptionProvider, make_transcript, transcript_confidence
from services.asr.segments import build_segments


class AssemblyAIProvider(TranscriptionProvider):
    name = "assemblyai"
    default_model = "universal"

    def default_base_url(self) -> str:
        return "https://api.assemblyai.com/v2"

    def _headers(self) -> dict:
        return {"authorization": self.api_key}

    def upload(self, audio: AudioSource) -> str:
        with open(audio.path, "rb") as f:
            resp = self._client.post(
                f"{self.base_url}/upload",
                headers={**self._headers(), "Content-Type": "application/octet-stream"},
                content=f.read(),
            )
        resp.raise_for_status()
        return resp.json()["upload_url"]

    def submit(self, audio: AudioSource, upload_ref: str | None, diarize: bool) -> Job:
        body = {
            "audio_url": upload_ref,
            "speech_model": self.model,
            "punctuate": True,
            "format_text": True,
            "language_detection": True,
        }
        if diarize:
            body["speaker_labels"] = True
            body["speakers_expected"] = 2
        resp = self._client.post(f"{self.base_url}/transcript", headers=self._headers(), json=body)
        resp.raise_for_status()
        return Job(id=resp.json()["id"], upload_ref=upload_ref)

    def fetch_status(self, job: Job) -> tuple[str, dict]:
        resp = self._client.get(f"{self.base_url}/transcript/{job.id}", headers=self._headers())
        resp.raise_for_status()
        data = resp.json()
        return data.get("status", "processing"), data

    def parse(self, payload: dict, diarize: bool) -> ProviderTranscript:
        language = payload.get("language_code")
        words = payload.get("words") or []
        tokens = [
            Token(
                text=w.get("text", ""),
                start=w["start"] / 1000.0,
                end=w["end"] / 1000.0,
                speaker=w.get("speaker") if diarize else None,
                language=language,
                confidence=w.get("confidence"),
            )
            for w in words
        ]
        return make_transcript(
            self,
            build_segments(tokens),
            duration=float(payload.get("audio_duration") or 0.0),
            language=language,
            confidence=payload.get("confidence") or transcript_confidence([t.confidence for t in tokens]),
        )
