"""Error taxonomy for the evaluation pipeline.

Recoverable errors (provider, enrichment, ledger) are caught at their boundary and logged.
Terminal errors propagate to the caller and leave the interaction unevaluated.
"""


class QAError(Exception):
    """Base class for every pipeline error."""


# ── Transcription ──

class ProviderError(QAError):
    """A single transcription provider failed. Triggers fallback to the next provider."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class EmptyTranscriptError(ProviderError):
    def __init__(self, provider: str):
        super().__init__(provider, "transcript contained no speech")


class JobFailedError(ProviderError):
    """Provider reported the transcription job as errored."""


class PollingTimeoutError(ProviderError):
    """Job did not complete within the bounded number of status checks."""


class AllProvidersFailedError(QAError):
    """Every configured provider failed for one interaction."""

    def __init__(self, attempts: list[str], errors: dict[str, str]):
        self.attempts = attempts
        self.errors = errors
        detail = "; ".join(f"{name}: {errors.get(name, 'unknown error')}" for name in attempts)
        super().__init__(f"All transcription providers failed ({detail or 'none configured'})")


class DeadlineExceeded(QAError, TimeoutError):
    """Caller-level timeout around one evaluation expired."""


# ── Lookups ──

class FormNotFoundError(QAError):
    def __init__(self, form_id: str | None):
        self.form_id = form_id
        super().__init__(f"Evaluation form not found: {form_id}")


class InteractionNotFoundError(QAError):
    def __init__(self, interaction_id: str):
        self.interaction_id = interaction_id
        super().__init__(f"Interaction not found: {interaction_id}")


# ── External collaborators ──

class EvaluatorError(QAError):
    """AI evaluator call failed or returned an unusable structure."""


class LedgerError(QAError):
    pass


class StorageError(QAError):
    pass
