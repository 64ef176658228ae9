"""Tests for the transcription orchestrator: provider order, fallback, channel strategy, cleanup."""

import json
from pathlib import Path

import httpx
import pytest
from unittest.mock import MagicMock, patch

from config.errors import AllProvidersFailedError, DeadlineExceeded, ProviderError
from config.schemas import ChannelStrategy, ProviderTranscript, Segment, SpeakerRole
from config.settings import PipelineConfig, ProviderSettings
from services.asr.transcriber import TranscriptionOrchestrator
from services.audio.channels import select_strategy
from services.audio.storage import RecordingStorage


def _transcript(name, segments, duration=10.0):
    return ProviderTranscript(provider=name, model=f"{name}-model", segments=segments, duration=duration)


def _provider(name, result=None, error=None, hosted=False):
    provider = MagicMock()
    provider.name = name
    provider.requires_hosted_audio = hosted
    if error is not None:
        provider.transcribe.side_effect = error
    else:
        provider.transcribe.return_value = result
    return provider


@pytest.fixture
def audio(tmp_path):
    path = tmp_path / "call.wav"
    path.write_bytes(b"RIFFfake")
    return path


@pytest.fixture
def mono():
    with patch("services.asr.transcriber.probe_channels", return_value=1):
        yield


# ── Provider order ──

class TestProviderOrder:
    def test_preferred_provider_rotates_to_front(self):
        config = PipelineConfig(preferred_provider="soniox")
        assert config.provider_order() == ["soniox", "openai", "deepgram", "assemblyai"]

    def test_default_order(self):
        assert PipelineConfig().provider_order() == ["assemblyai", "soniox", "openai", "deepgram"]

    def test_override_wins(self):
        config = PipelineConfig(preferred_provider="soniox", provider_order_override=["deepgram", "openai"])
        assert config.provider_order() == ["deepgram", "openai"]

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            PipelineConfig(preferred_provider="whisperx")

    def test_from_config_only_builds_configured_providers(self):
        config = PipelineConfig(
            preferred_provider="soniox",
            providers={"soniox": ProviderSettings(api_key="sx"), "openai": ProviderSettings(api_key="sk")},
        )
        orchestrator = TranscriptionOrchestrator.from_config(config)
        assert set(orchestrator.providers) == {"soniox", "openai"}
        assert orchestrator.providers["soniox"].poll_interval == 2.0
        assert orchestrator.order[0] == "soniox"


# ── Fallback chain ──

class TestFallback:
    def test_falls_back_in_configured_order(self, audio, mono):
        seg = [Segment(start=0.0, end=1.0, speaker=0, text="Hello, thanks for calling.")]
        providers = {
            "assemblyai": _provider("assemblyai", _transcript("assemblyai", seg)),
            "soniox": _provider("soniox", error=ProviderError("soniox", "boom")),
            "openai": _provider("openai", error=RuntimeError("timeout")),
            "deepgram": _provider("deepgram", _transcript("deepgram", seg)),
        }
        order = PipelineConfig(preferred_provider="soniox").provider_order()
        result = TranscriptionOrchestrator(providers, order).transcribe(audio, start_time_ms=1_000_000)

        assert result.provider == "deepgram"
        assert result.attempted_providers == ["soniox", "openai", "deepgram"]
        providers["assemblyai"].transcribe.assert_not_called()
        assert result.conversation.utterances[0].timestamp == 1_000_000
        assert result.conversation.utterances[0].speaker_id == SpeakerRole.AGENT

    def test_each_provider_tried_once(self, audio, mono):
        providers = {name: _provider(name, error=ProviderError(name, "down"))
                     for name in ("assemblyai", "soniox", "openai", "deepgram")}
        orchestrator = TranscriptionOrchestrator(providers, ["assemblyai", "soniox", "openai", "deepgram"])

        with pytest.raises(AllProvidersFailedError) as exc:
            orchestrator.transcribe(audio)

        assert exc.value.attempts == ["assemblyai", "soniox", "openai", "deepgram"]
        assert set(exc.value.errors) == set(exc.value.attempts)
        for p in providers.values():
            assert p.transcribe.call_count == 1

    def test_unconfigured_providers_are_not_attempts(self, audio, mono):
        seg = [Segment(start=0.0, end=1.0, speaker="A", text="Hi.")]
        providers = {"openai": _provider("openai", _transcript("openai", seg))}
        result = TranscriptionOrchestrator(providers, ["assemblyai", "soniox", "openai"]).transcribe(audio)
        assert result.attempted_providers == ["openai"]

    def test_whitespace_only_result_falls_through(self, audio, mono):
        providers = {
            "assemblyai": _provider("assemblyai", _transcript("assemblyai", [Segment(start=0, end=1, text="  ")])),
            "soniox": _provider("soniox", _transcript("soniox", [Segment(start=0, end=1, speaker="1", text="Hi.")])),
        }
        result = TranscriptionOrchestrator(providers, ["assemblyai", "soniox"]).transcribe(audio)
        assert result.provider == "soniox"

    def test_deadline_aborts_chain(self, audio, mono):
        providers = {
            "assemblyai": _provider("assemblyai", error=DeadlineExceeded("late")),
            "soniox": _provider("soniox", error=ProviderError("soniox", "unused")),
        }
        with pytest.raises(DeadlineExceeded):
            TranscriptionOrchestrator(providers, ["assemblyai", "soniox"]).transcribe(audio)
        providers["soniox"].transcribe.assert_not_called()


# ── Channel strategy ──

class TestChannelStrategy:
    def test_select_strategy(self):
        assert select_strategy(2) == ChannelStrategy.DUAL_CHANNEL
        assert select_strategy(1) == ChannelStrategy.DIARIZED_MONO
        assert select_strategy(0) == ChannelStrategy.DIARIZED_MONO
        assert select_strategy(6) == ChannelStrategy.DIARIZED_MONO

    def test_dual_channel_merges_by_timestamp_and_cleans_up(self, audio):
        created = {}

        def fake_split(path, workdir):
            left, right = Path(workdir) / "left.mp3", Path(workdir) / "right.mp3"
            left.write_bytes(b"l")
            right.write_bytes(b"r")
            created["dir"] = Path(workdir)
            return left, right

        def fake_transcribe(source, diarize, deadline):
            assert diarize is False
            if source.path.name == "left.mp3":
                return _transcript("soniox", [
                    Segment(start=0.0, end=1.0, speaker="2", text="Good morning."),
                    Segment(start=4.0, end=5.0, speaker="2", text="Anything else?"),
                ], duration=6.0)
            return _transcript("soniox", [Segment(start=2.0, end=3.0, speaker="1", text="I need help.")], duration=6.5)

        provider = _provider("soniox")
        provider.transcribe.side_effect = fake_transcribe

        with patch("services.asr.transcriber.probe_channels", return_value=2), \
             patch("services.asr.transcriber.split_stereo", side_effect=fake_split):
            result = TranscriptionOrchestrator({"soniox": provider}, ["soniox"]).transcribe(audio)

        roles = [(u.speaker_id, u.original_text) for u in result.conversation.utterances]
        assert roles == [
            (SpeakerRole.AGENT, "Good morning."),
            (SpeakerRole.CUSTOMER, "I need help."),
            (SpeakerRole.AGENT, "Anything else?"),
        ]
        assert result.strategy == ChannelStrategy.DUAL_CHANNEL
        assert result.metadata.duration == 6.5
        assert not created["dir"].exists()

    def test_split_failure_falls_back_to_mono(self, audio):
        provider = _provider("soniox", _transcript("soniox", [Segment(start=0, end=1, speaker="1", text="Hi.")]))
        with patch("services.asr.transcriber.probe_channels", return_value=2), \
             patch("services.asr.transcriber.split_stereo", side_effect=RuntimeError("ffmpeg missing")):
            result = TranscriptionOrchestrator({"soniox": provider}, ["soniox"]).transcribe(audio)
        assert result.strategy == ChannelStrategy.DIARIZED_MONO
        assert provider.transcribe.call_args.kwargs["diarize"] is True


# ── Hosted audio ──

class TestHostedAudio:
    def _storage(self, calls):
        def handler(request: httpx.Request):
            if request.method == "POST":
                calls.append(("upload", request.url.path))
                return httpx.Response(200, json={"url": "/voice_recording/i1/call.wav"})
            if request.method == "DELETE":
                calls.append(("delete", json.loads(request.content)["filesPath"]))
                return httpx.Response(200, json={"ok": True})
            return httpx.Response(404)

        return RecordingStorage(
            api_url="https://store.example/api", base_url="https://store.example",
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )

    def test_hosted_upload_deleted_after_failure(self, audio, mono):
        calls = []
        deepgram = _provider("deepgram", error=ProviderError("deepgram", "400"), hosted=True)
        orchestrator = TranscriptionOrchestrator({"deepgram": deepgram}, ["deepgram"], storage=self._storage(calls))

        with pytest.raises(AllProvidersFailedError):
            orchestrator.transcribe(audio, interaction_id="i1")

        assert calls == [
            ("upload", "/api/store/single/voice_recording/i1"),
            ("delete", ["/voice_recording/i1/call.wav"]),
        ]
        source = deepgram.transcribe.call_args.args[0]
        assert source.public_url == "https://store.example/store/voice_recording/i1/call.wav"

    def test_hosted_upload_deleted_after_success(self, audio, mono):
        calls = []
        deepgram = _provider(
            "deepgram", _transcript("deepgram", [Segment(start=0, end=1, speaker=0, text="Hello.")]), hosted=True
        )
        orchestrator = TranscriptionOrchestrator({"deepgram": deepgram}, ["deepgram"], storage=self._storage(calls))
        result = orchestrator.transcribe(audio, interaction_id="i1")
        assert result.provider == "deepgram"
        assert [c[0] for c in calls] == ["upload", "delete"]

    def test_hosted_provider_without_storage_is_soft_failure(self, audio, mono):
        deepgram = _provider("deepgram", hosted=True)
        openai = _provider("openai", _transcript("openai", [Segment(start=0, end=1, text="Hello.")]))
        result = TranscriptionOrchestrator(
            {"deepgram": deepgram, "openai": openai}, ["deepgram", "openai"]
        ).transcribe(audio)
        assert result.provider == "openai"
        assert result.attempted_providers == ["deepgram", "openai"]
        deepgram.transcribe.assert_not_called()
