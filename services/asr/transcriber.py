"""Transcription orchestrator — ordered provider fallback over a channel strategy.

Providers are tried strictly one at a time, in the configured order, each at most once:
  1. Probe the channel count once and pick dual-channel or diarized-mono
  2. For each provider: transcribe (both halves for stereo) → merge → canonical conversation
  3. Any provider failure is logged and the next provider is tried
  4. If every provider fails, raise AllProvidersFailedError

Split files live in a temp directory owned by this call; hosted uploads are scoped to a
single provider attempt. Both are released on every exit path, including deadline expiry.
"""

import tempfile
from pathlib import Path

from loguru import logger

from config.errors import AllProvidersFailedError, DeadlineExceeded
from config.schemas import (
    ChannelStrategy, ProviderTranscript, SpeakerRole, TranscriptMetadata, TranscriptionResult,
)
from config.settings import PipelineConfig
from analysis.normalizer import normalize_voice
from services.asr.assemblyai import AssemblyAIProvider
from services.asr.base import AudioSource, TranscriptionProvider, transcript_confidence
from services.asr.deepgram import DeepgramProvider
from services.asr.openai_stt import OpenAITranscriptionProvider
from services.asr.polling import Deadline
from services.asr.soniox import SonioxProvider
from services.audio.channels import probe_channels, probe_duration, select_strategy, split_stereo
from services.audio.storage import RecordingStorage


PROVIDER_CLASSES: dict[str, type[TranscriptionProvider]] = {
    "assemblyai": AssemblyAIProvider,
    "soniox": SonioxProvider,
    "openai": OpenAITranscriptionProvider,
    "deepgram": DeepgramProvider,
}

# Soniox jobs finish faster; poll them more often
POLL_INTERVALS = {"soniox": 2.0}


class TranscriptionOrchestrator:
    def __init__(
        self,
        providers: dict[str, TranscriptionProvider],
        order: list[str],
        storage: RecordingStorage | None = None,
    ):
        self.providers = providers
        self.order = order
        self.storage = storage

    @classmethod
    def from_config(cls, config: PipelineConfig, storage: RecordingStorage | None = None) -> "TranscriptionOrchestrator":
        """Instantiate every provider that has credentials configured."""
        providers = {}
        for name in config.provider_order():
            settings = config.provider(name)
            if not settings.configured:
                logger.debug(f"Transcription provider {name} has no API key, not available")
                continue
            providers[name] = PROVIDER_CLASSES[name](
                settings.api_key,
                model=settings.model,
                base_url=settings.base_url,
                poll_interval=POLL_INTERVALS.get(name, config.polling.interval_seconds),
                max_poll_attempts=config.polling.max_attempts,
            )
        return cls(providers, config.provider_order(), storage=storage)

    # ── Single provider call ──

    def _run_provider(
        self,
        provider: TranscriptionProvider,
        path: Path,
        *,
        diarize: bool,
        deadline: Deadline,
        interaction_id: str,
    ) -> ProviderTranscript:
        if not provider.requires_hosted_audio:
            return provider.transcribe(AudioSource(path), diarize=diarize, deadline=deadline)

        if self.storage is None or not self.storage.is_configured():
            raise RuntimeError(f"{provider.name} needs publicly hosted audio but storage is not configured")
        with self.storage.hosted(path, interaction_id) as public_url:
            return provider.transcribe(AudioSource(path, public_url), diarize=diarize, deadline=deadline)

    def _transcribe_dual(
        self,
        provider: TranscriptionProvider,
        left: Path,
        right: Path,
        *,
        deadline: Deadline,
        interaction_id: str,
    ) -> ProviderTranscript:
        """Transcribe each channel independently and merge by start time."""
        agent = self._run_provider(provider, left, diarize=False, deadline=deadline, interaction_id=interaction_id)
        customer = self._run_provider(provider, right, diarize=False, deadline=deadline, interaction_id=interaction_id)

        segments = [s.model_copy(update={"speaker": SpeakerRole.AGENT}) for s in agent.segments]
        segments += [s.model_copy(update={"speaker": SpeakerRole.CUSTOMER}) for s in customer.segments]
        segments.sort(key=lambda s: s.start)

        return ProviderTranscript(
            provider=provider.name,
            model=agent.model,
            segments=segments,
            duration=max(agent.duration, customer.duration),
            language=agent.language or customer.language,
            confidence=transcript_confidence([agent.confidence, customer.confidence]),
        )

    # ── Fallback chain ──

    def transcribe(
        self,
        audio_path: str | Path,
        *,
        interaction_id: str = "",
        agent: str | None = None,
        customer: str | None = None,
        start_time_ms: int = 0,
        channel: str = "call",
        deadline: Deadline | None = None,
    ) -> TranscriptionResult:
        """Transcribe one recording, falling back across providers.

        Args:
            audio_path: Local recording path
            interaction_id: Used for log prefixes and hosted-upload naming
            agent: Agent identity hint
            customer: Customer identity hint
            start_time_ms: Interaction start (epoch ms); utterance timestamps are absolute
            channel: Interaction channel name carried onto the conversation
            deadline: Caller-level deadline; expiry aborts the chain immediately

        Returns:
            TranscriptionResult from the first provider that succeeds

        Raises:
            AllProvidersFailedError: every available provider failed
            DeadlineExceeded: the caller deadline expired
        """
        audio_path = Path(audio_path)
        deadline = deadline or Deadline.none()
        tag = f"[{interaction_id}]" if interaction_id else "[transcription]"

        strategy = select_strategy(probe_channels(audio_path))
        attempts: list[str] = []
        errors: dict[str, str] = {}

        with tempfile.TemporaryDirectory(prefix="convoqa_split_") as workdir:
            left = right = None
            if strategy == ChannelStrategy.DUAL_CHANNEL:
                try:
                    left, right = split_stereo(audio_path, workdir)
                except Exception as e:
                    logger.warning(f"{tag} Stereo split failed, falling back to diarized mono: {e}")
                    strategy = ChannelStrategy.DIARIZED_MONO
            logger.info(f"{tag} Channel strategy: {strategy.value}")

            for name in self.order:
                provider = self.providers.get(name)
                if provider is None:
                    continue
                deadline.check("transcription")
                attempts.append(name)
                logger.info(f"{tag} Transcribing with {name} (attempt {len(attempts)})")
                try:
                    if strategy == ChannelStrategy.DUAL_CHANNEL:
                        transcript = self._transcribe_dual(
                            provider, left, right, deadline=deadline, interaction_id=interaction_id
                        )
                    else:
                        transcript = self._run_provider(
                            provider, audio_path, diarize=True, deadline=deadline, interaction_id=interaction_id
                        )
                except DeadlineExceeded:
                    raise
                except Exception as e:
                    errors[name] = str(e)
                    logger.warning(f"{tag} Provider {name} failed: {e}")
                    continue

                duration = transcript.duration or probe_duration(audio_path)
                conversation = normalize_voice(
                    transcript.segments,
                    start_time_ms=start_time_ms,
                    channel=channel,
                    duration=duration,
                    agent=agent,
                    customer=customer,
                )
                if not conversation.utterances:
                    errors[name] = "no usable utterances"
                    logger.warning(f"{tag} Provider {name} returned no usable utterances")
                    continue

                logger.info(
                    f"{tag} Transcribed by {name}/{transcript.model}: "
                    f"{len(conversation.utterances)} utterances, {duration:.1f}s"
                )
                return TranscriptionResult(
                    success=True,
                    provider=name,
                    model=transcript.model,
                    conversation=conversation,
                    metadata=TranscriptMetadata(
                        duration=duration,
                        language=transcript.language,
                        confidence=transcript.confidence,
                    ),
                    strategy=strategy,
                    attempted_providers=attempts,
                )

        logger.error(f"{tag} All transcription providers failed: {errors}")
        raise AllProvidersFailedError(attempts, errors)

    def close(self) -> None:
        for provider in self.providers.values():
            provider.close()
