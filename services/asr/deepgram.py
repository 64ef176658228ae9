"""Deepgram adapter — URL-based prerecorded transcription with integer speaker ids.

Deepgram ingests audio by URL, so the orchestrator hosts the recording on public storage for
the duration of the call and deletes it afterwards.
"""

from config.schemas import ProviderTranscript, Token
from services.asr.base import AudioSource, Job, TranscriptionProvider, make_transcript, transcript_confidence
from services.asr.segments import build_segments


class DeepgramProvider(TranscriptionProvider):
    name = "deepgram"
    default_model = "nova-2"
    requires_hosted_audio = True

    def default_base_url(self) -> str:
        return "https://api.deepgram.com/v1"

    def submit(self, audio: AudioSource, upload_ref: str | None, diarize: bool) -> Job:
        if not audio.public_url:
            raise ValueError("deepgram requires a publicly hosted recording URL")
        resp = self._client.post(
            f"{self.base_url}/listen",
            headers={"Authorization": f"Token {self.api_key}", "Content-Type": "application/json"},
            params={
                "model": self.model,
                "smart_format": "true",
                "punctuate": "true",
                "diarize": "true" if diarize else "false",
                "detect_language": "true",
            },
            json={"url": audio.public_url},
        )
        resp.raise_for_status()
        return Job(payload=resp.json())

    def parse(self, payload: dict, diarize: bool) -> ProviderTranscript:
        results = payload.get("results") or {}
        channels = results.get("channels") or []
        metadata = payload.get("metadata") or {}

        tokens: list[Token] = []
        language = None
        for channel in channels[:1]:
            language = channel.get("detected_language")
            alternatives = channel.get("alternatives") or []
            if not alternatives:
                continue
            for w in alternatives[0].get("words") or []:
                tokens.append(Token(
                    text=w.get("punctuated_word") or w.get("word", ""),
                    start=w["start"],
                    end=w["end"],
                    speaker=w.get("speaker") if diarize else None,
                    language=language,
                    confidence=w.get("confidence"),
                ))

        return make_transcript(
            self,
            build_segments(tokens),
            duration=float(metadata.get("duration") or 0.0),
            language=language,
            confidence=transcript_confidence([t.confidence for t in tokens]),
        )
