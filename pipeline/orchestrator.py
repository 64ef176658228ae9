"""Pipeline Orchestrator — evaluates one interaction end to end.

Stages:
  1. Load interaction + form (missing either is terminal; nothing is written)
  2. Build the canonical conversation
       voice  → download recording → transcription orchestrator (provider fallback)
       text   → message / email normalizer
  3. Enrich utterances (sentiment, translation, intent; neutral default on failure)
  4. AI evaluation with the instruction builder
  5. Score (and optionally apply classification deductions)
  6. Persist the evaluation record, then mark the interaction evaluated
  7. Cost estimate + ledger debit (failures never roll back the evaluation)

Every evaluation owns its working set: the downloaded recording lives in a temporary
directory that is removed on every exit path, including a caller-level timeout.
"""

import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from analysis.costs import CostEstimator
from analysis.insights import summarize_conversation
from analysis.instructions import (
    build_instructions, format_transcript_text, interaction_type_for_channel, is_text_channel,
)
from analysis.normalizer import normalize_emails, normalize_messages, to_epoch_ms
from analysis.scoring import apply_classifications, rescore, score
from config.errors import FormNotFoundError, InteractionNotFoundError, StorageError
from config.schemas import (
    ClassificationType, Conversation, CostModel, EvaluationForm, EvaluationRecord,
    InteractionData, InteractionRecord, InteractionType,
)
from config.settings import PipelineConfig
from services.asr.polling import Deadline
from services.asr.transcriber import TranscriptionOrchestrator
from services.audio.storage import RecordingStorage
from services.enrichment.client import EnrichmentClient
from services.evaluator.client import EvaluatorClient
from services.ledger.client import CreditLedgerClient
from services.stores import EvaluationStore, FormStore, InteractionStore, MessageStore


@dataclass
class PipelineDependencies:
    forms: FormStore
    interactions: InteractionStore
    messages: MessageStore
    evaluations: EvaluationStore
    transcriber: TranscriptionOrchestrator
    storage: RecordingStorage
    enrichment: EnrichmentClient
    evaluator: EvaluatorClient
    costs: CostEstimator

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        *,
        forms: FormStore,
        interactions: InteractionStore,
        messages: MessageStore,
        evaluations: EvaluationStore,
    ) -> "PipelineDependencies":
        storage = RecordingStorage(
            api_url=config.storage_api_url,
            base_url=config.storage_base_url,
            verify_ssl=config.verify_ssl,
        )
        return cls(
            forms=forms,
            interactions=interactions,
            messages=messages,
            evaluations=evaluations,
            transcriber=TranscriptionOrchestrator.from_config(config, storage=storage),
            storage=storage,
            enrichment=EnrichmentClient(
                config.enrichment_url,
                max_concurrency=config.enrichment_concurrency,
                timeout=config.request_timeout,
            ),
            evaluator=EvaluatorClient(config.evaluator_url),
            costs=CostEstimator(
                config.price_table,
                CreditLedgerClient(config.ledger_url, config.ledger_api_key),
            ),
        )

    def close(self) -> None:
        """Release the HTTP clients held by the transcriber and recording storage."""
        self.transcriber.close()
        self.storage.close()


@dataclass
class EvaluationOutcome:
    evaluation_id: str
    record: EvaluationRecord
    cost: CostModel | None
    stage_times: dict[str, float]


# ── Stage helpers ──

def _load_inputs(deps: PipelineDependencies, interaction_id: str, form_id: str) -> tuple[InteractionRecord, EvaluationForm]:
    interaction = deps.interactions.get_interaction(interaction_id)
    if interaction is None:
        raise InteractionNotFoundError(interaction_id)
    form = deps.forms.get_form(form_id)
    if form is None:
        raise FormNotFoundError(form_id)
    return interaction, form


def _text_conversation(deps: PipelineDependencies, interaction: InteractionRecord) -> Conversation:
    if interaction_type_for_channel(interaction.channel) == InteractionType.EMAIL:
        return normalize_emails(deps.messages.get_emails(interaction.id), channel=interaction.channel)
    return normalize_messages(
        deps.messages.get_messages(interaction.id), channel=interaction.channel, interaction=interaction
    )


def _voice_conversation(
    deps: PipelineDependencies,
    interaction: InteractionRecord,
    deadline: Deadline,
    audio_path: str | None,
) -> tuple[Conversation, str, float]:
    """Returns (conversation, provider name, audio duration in seconds)."""
    start_ms = to_epoch_ms(interaction.start_time) if interaction.start_time else int(time.time() * 1000)
    hints = {"agent": interaction.agent, "customer": interaction.caller}

    with tempfile.TemporaryDirectory(prefix=f"convoqa_{interaction.id}_") as workdir:
        if audio_path is None:
            if not interaction.recording_url:
                raise StorageError(f"Interaction {interaction.id} has no recording URL")
            local = deps.storage.download(interaction.recording_url, workdir, interaction.id)
        else:
            local = Path(audio_path)
        deadline.check("download")

        result = deps.transcriber.transcribe(
            local,
            interaction_id=interaction.id,
            start_time_ms=start_ms,
            channel=interaction.channel,
            deadline=deadline,
            **hints,
        )

    duration = result.metadata.duration or interaction.duration
    return result.conversation, result.provider, duration


# ── Main entry point ──

def process_evaluation(
    interaction_id: str,
    form_id: str,
    deps: PipelineDependencies,
    config: PipelineConfig,
    *,
    audio_path: str | None = None,
    timeout: float | None = None,
) -> EvaluationOutcome:
    """Evaluate one interaction against one form.

    Args:
        interaction_id: Interaction to evaluate
        form_id: Evaluation form to score against
        deps: Stores and service clients
        config: Pipeline configuration
        audio_path: Local recording to use instead of downloading recording_url
        timeout: Caller-level timeout in seconds (defaults to config.evaluation_timeout)

    Returns:
        EvaluationOutcome with the persisted record and the cost (None if costing failed)

    Raises:
        InteractionNotFoundError, FormNotFoundError: nothing is written
        AllProvidersFailedError: interaction left unevaluated
        EvaluatorError: interaction left unevaluated
        DeadlineExceeded: timeout expired; temporary artifacts are still removed
    """
    deadline = Deadline(timeout if timeout is not None else config.evaluation_timeout)
    stage_times: dict[str, float] = {}
    last = time.perf_counter()

    def _stage_done(name: str, check: bool = True):
        nonlocal last
        now = time.perf_counter()
        stage_times[name] = round(now - last, 2)
        logger.info(f"[{interaction_id}] ⏱ {name}: {now - last:.1f}s")
        last = now
        if check:
            deadline.check(name)

    logger.info(f"[{interaction_id}] Starting evaluation with form {form_id}")

    # ── STAGE 1: INPUTS ──
    interaction, form = _load_inputs(deps, interaction_id, form_id)
    _stage_done("Stage 1: Load")

    # ── STAGE 2: CONVERSATION ──
    provider = None
    duration = interaction.duration
    if is_text_channel(interaction.channel):
        logger.info(f"[{interaction_id}] Stage 2: Normalizing {interaction.channel} thread")
        conversation = _text_conversation(deps, interaction)
        duration = conversation.duration
    else:
        logger.info(f"[{interaction_id}] Stage 2: Transcribing recording")
        conversation, provider, duration = _voice_conversation(deps, interaction, deadline, audio_path)
    _stage_done("Stage 2: Conversation")

    # ── STAGE 3: ENRICHMENT ──
    conversation, enrichment_usage = deps.enrichment.enrich_sync(conversation)
    _stage_done("Stage 3: Enrichment")

    # ── STAGE 4: AI EVALUATION ──
    interaction_type = interaction_type_for_channel(interaction.channel)
    instructions = build_instructions(form, interaction_type, sample_response=config.sample_response)
    evaluation = deps.evaluator.evaluate(format_transcript_text(conversation), instructions)
    _stage_done("Stage 4: Evaluation")

    # ── STAGE 5: SCORING ──
    scores = score(form, evaluation.parameters)
    if config.auto_apply_classifications:
        scores = apply_classifications(scores, form)
    logger.info(
        f"[{interaction_id}] Score {scores.overall.adjusted_score}/{scores.overall.max_score} "
        f"({scores.overall.percentage}%)"
    )

    # ── STAGE 6: PERSIST ──
    record = EvaluationRecord(
        interaction_id=interaction.id,
        form_id=form.id,
        interaction_data=InteractionData(
            agent=interaction.agent,
            caller=interaction.caller,
            direction=interaction.direction,
            channel=interaction.channel,
            duration=duration,
        ),
        conversation=conversation,
        transcription_provider=provider,
        evaluation=evaluation,
        scores=scores,
        insights=summarize_conversation(conversation, enrichment_usage.total_tokens),
        created_at=datetime.now(timezone.utc),
    )
    evaluation_id = deps.evaluations.save_evaluation(record)
    deps.interactions.mark_evaluated(interaction.id, evaluation_id)
    _stage_done("Stage 6: Persist", check=False)

    # ── STAGE 7: COST ──
    cost = None
    try:
        cost = deps.costs.record(
            evaluation_id,
            usage=evaluation.usage,
            duration_seconds=duration,
            channel=interaction.channel,
            stt_provider=provider,
        )
        deps.evaluations.attach_cost(evaluation_id, cost)
        record = record.model_copy(update={"cost": cost})
    except Exception as e:
        logger.warning(f"[{interaction_id}] Cost recording failed (evaluation {evaluation_id} kept): {e}")

    total = sum(stage_times.values())
    logger.info(f"[{interaction_id}] Evaluation {evaluation_id} complete in {total:.1f}s")
    return EvaluationOutcome(evaluation_id=evaluation_id, record=record, cost=cost, stage_times=stage_times)


def reclassify_evaluation(
    evaluation_id: str,
    record: EvaluationRecord,
    form: EvaluationForm | None,
    overrides: dict[str, ClassificationType],
    evaluations: EvaluationStore,
) -> EvaluationRecord:
    """Apply a human classification override as a full recomputation and persist the result."""
    merged = {**record.overrides, **overrides}
    scores = rescore(form, record.evaluation.parameters, merged)
    updated = record.model_copy(update={"scores": scores, "overrides": merged})
    evaluations.update_evaluation(evaluation_id, updated)
    logger.info(
        f"[{record.interaction_id}] Evaluation {evaluation_id} reclassified: "
        f"{record.scores.overall.percentage}% → {scores.overall.percentage}%"
    )
    return updated
