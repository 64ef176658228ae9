"""Pipeline configuration — one explicit struct built from the environment and injected.

Nothing downstream reads the process environment at call time. `load_config()` is the only
place that touches `os.environ`; every client, the transcription orchestrator and the cost
estimator receive the resulting `PipelineConfig` (or a slice of it) at construction.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


# Fixed provider order; the preferred provider is rotated to the front.
CANONICAL_PROVIDER_ORDER = ["assemblyai", "soniox", "openai", "deepgram"]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return float(raw)


# ── Prices ──

class PriceTable(BaseModel):
    """Per-unit cost rates plus the markup that turns cost into customer-facing price.

    STT rates are per audio minute, LLM rates are per token. Explicit price overrides win
    over `cost * markup`.
    """
    stt_cost_per_minute: dict[str, float] = Field(default_factory=dict)
    default_stt_cost_per_minute: float = 0.0052
    prompt_cost_per_token: float = 0.00005
    completion_cost_per_token: float = 0.00015
    markup: float = 1.25

    stt_price_per_minute: Optional[float] = None
    prompt_price_per_token: Optional[float] = None
    completion_price_per_token: Optional[float] = None

    def stt_cost_rate(self, provider: str | None) -> float:
        if provider and provider in self.stt_cost_per_minute:
            return self.stt_cost_per_minute[provider]
        return self.default_stt_cost_per_minute

    def stt_price_rate(self, provider: str | None) -> float:
        if self.stt_price_per_minute is not None:
            return self.stt_price_per_minute
        return self.stt_cost_rate(provider) * self.markup

    def prompt_price_rate(self) -> float:
        if self.prompt_price_per_token is not None:
            return self.prompt_price_per_token
        return self.prompt_cost_per_token * self.markup

    def completion_price_rate(self) -> float:
        if self.completion_price_per_token is not None:
            return self.completion_price_per_token
        return self.completion_cost_per_token * self.markup

    @classmethod
    def from_env(cls) -> "PriceTable":
        per_provider = {}
        for provider in CANONICAL_PROVIDER_ORDER:
            raw = os.getenv(f"COST_STT_{provider.upper()}")
            if raw:
                per_provider[provider] = float(raw)

        def _optional(name: str) -> float | None:
            raw = os.getenv(name)
            return float(raw) if raw else None

        return cls(
            stt_cost_per_minute=per_provider,
            default_stt_cost_per_minute=_env_float("COST_STT_PRERECORDED", 0.0052),
            prompt_cost_per_token=_env_float("COST_OPENAI_GPT4O_INPUT", 0.00005),
            completion_cost_per_token=_env_float("COST_OPENAI_GPT4O_OUTPUT", 0.00015),
            markup=_env_float("PRICE_MARKUP", 1.25),
            stt_price_per_minute=_optional("PRICE_STT_PRERECORDED"),
            prompt_price_per_token=_optional("PRICE_OPENAI_GPT4O_INPUT"),
            completion_price_per_token=_optional("PRICE_OPENAI_GPT4O_OUTPUT"),
        )


# ── Providers ──

class ProviderSettings(BaseModel):
    api_key: str = ""
    model: Optional[str] = None
    base_url: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


class PollingSettings(BaseModel):
    interval_seconds: float = Field(3.0, gt=0)
    max_attempts: int = Field(200, ge=1)


# ── Pipeline ──

class PipelineConfig(BaseModel):
    preferred_provider: str = "assemblyai"
    provider_order_override: Optional[list[str]] = None
    price_table: PriceTable = Field(default_factory=PriceTable)
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)
    polling: PollingSettings = Field(default_factory=PollingSettings)

    enrichment_url: Optional[str] = None
    enrichment_concurrency: int = Field(8, ge=1)
    evaluator_url: Optional[str] = None
    ledger_url: Optional[str] = None
    ledger_api_key: str = ""
    storage_api_url: Optional[str] = None
    storage_base_url: Optional[str] = None
    verify_ssl: bool = False

    request_timeout: float = 60.0
    evaluation_timeout: Optional[float] = Field(None, description="Caller-level timeout in seconds")
    auto_apply_classifications: bool = False
    sample_response: Optional[str] = None

    @field_validator("preferred_provider")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in CANONICAL_PROVIDER_ORDER:
            raise ValueError(f"Unknown transcription provider: {value}")
        return value

    @field_validator("provider_order_override")
    @classmethod
    def _known_override(cls, value: list[str] | None) -> list[str] | None:
        if not value:
            return None
        cleaned = [v.strip().lower() for v in value if v.strip()]
        unknown = [v for v in cleaned if v not in CANONICAL_PROVIDER_ORDER]
        if unknown:
            raise ValueError(f"Unknown transcription providers in override: {unknown}")
        return list(dict.fromkeys(cleaned))

    def provider_order(self) -> list[str]:
        """Fallback order: the override if set, else the canonical order rotated to the preferred."""
        if self.provider_order_override:
            return list(self.provider_order_override)
        idx = CANONICAL_PROVIDER_ORDER.index(self.preferred_provider)
        return CANONICAL_PROVIDER_ORDER[idx:] + CANONICAL_PROVIDER_ORDER[:idx]

    def provider(self, name: str) -> ProviderSettings:
        return self.providers.get(name, ProviderSettings())


def load_config(env_file: str | None = None) -> PipelineConfig:
    """Build a PipelineConfig from the process environment (and an optional .env file)."""
    load_dotenv(env_file)

    override = os.getenv("TRANSCRIPTION_PROVIDER_ORDER", "")
    timeout = os.getenv("EVALUATION_TIMEOUT_SECONDS")

    return PipelineConfig(
        preferred_provider=os.getenv("TRANSCRIPTION_PROVIDER", "assemblyai"),
        provider_order_override=[p for p in override.split(",") if p.strip()] or None,
        price_table=PriceTable.from_env(),
        providers={
            "assemblyai": ProviderSettings(
                api_key=os.getenv("ASSEMBLYAI_API_KEY", ""),
                model=os.getenv("ASSEMBLYAI_MODEL", "universal"),
            ),
            "soniox": ProviderSettings(
                api_key=os.getenv("SONIOX_API_KEY", ""),
                model=os.getenv("SONIOX_MODEL", "stt-async-v3"),
            ),
            "openai": ProviderSettings(
                api_key=os.getenv("OPENAI_API_KEY", ""),
                model=os.getenv("OPENAI_TRANSCRIPTION_MODEL", "whisper-1"),
            ),
            "deepgram": ProviderSettings(
                api_key=os.getenv("DEEPGRAM_API_KEY", ""),
                model=os.getenv("DEEPGRAM_MODEL", "nova-2"),
            ),
        },
        polling=PollingSettings(
            interval_seconds=_env_float("TRANSCRIPTION_POLL_INTERVAL", 3.0),
            max_attempts=int(os.getenv("TRANSCRIPTION_POLL_MAX_ATTEMPTS", "200")),
        ),
        enrichment_url=os.getenv("SENTIMENT_ANALYSIS_URL"),
        enrichment_concurrency=int(os.getenv("ENRICHMENT_CONCURRENCY", "8")),
        evaluator_url=os.getenv("QAEVALUATION_URL"),
        ledger_url=os.getenv("CREDIT_LEDGER_URL"),
        ledger_api_key=os.getenv("CREDIT_LEDGER_API_KEY", ""),
        storage_api_url=os.getenv("STORAGE_API_URL"),
        storage_base_url=os.getenv("STORAGE_BASE_URL"),
        verify_ssl=os.getenv("RECORDING_VERIFY_SSL", "false").lower() == "true",
        request_timeout=_env_float("REQUEST_TIMEOUT_SECONDS", 60.0),
        evaluation_timeout=float(timeout) if timeout else None,
        auto_apply_classifications=os.getenv("AUTO_APPLY_CLASSIFICATIONS", "false").lower() == "true",
        sample_response=os.getenv("AIQA_SAMPLE_RESPONSE") or None,
    )
