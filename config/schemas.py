"""ConvoQA Pydantic schemas — structured definitions shared by every pipeline stage."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# ── SPEAKERS & CHANNELS ──

class SpeakerRole(str, Enum):
    AGENT = "agent"
    CUSTOMER = "customer"


class ChannelStrategy(str, Enum):
    DUAL_CHANNEL = "dual-channel"
    DIARIZED_MONO = "diarized-mono"


class InteractionType(str, Enum):
    """Instruction template family, derived from the interaction channel."""
    CALL = "call"
    TEXT_CONVERSATION = "text_conversation"
    EMAIL = "email"


# ── PROVIDER OUTPUT ──

class Token(BaseModel):
    """One provider word/token with offsets in seconds relative to the recording start."""
    text: str
    start: float
    end: float
    speaker: Optional[Any] = Field(None, description="Raw provider speaker marker")
    language: Optional[str] = None
    confidence: Optional[float] = None


class Segment(BaseModel):
    """Sentence-level run of tokens from a single speaker."""
    start: float
    end: float
    speaker: Optional[Any] = None
    language: Optional[str] = None
    text: str


class ProviderTranscript(BaseModel):
    """Complete, provider-agnostic output of one successful adapter call."""
    provider: str
    model: str
    segments: list[Segment]
    duration: float = 0.0
    language: Optional[str] = None
    confidence: Optional[float] = None


# ── CANONICAL CONVERSATION ──

class Sentiment(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str = "neutral"
    score: float = 0.5


class Profanity(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = 0.0
    words: tuple[str, ...] = ()


class Utterance(BaseModel):
    """One speaker turn on the absolute interaction timeline."""
    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(description="Epoch milliseconds")
    speaker_id: SpeakerRole
    original_text: str
    translated_text: Optional[str] = None
    sentiment: Sentiment = Field(default_factory=Sentiment)
    profanity: Profanity = Field(default_factory=Profanity)
    intent: tuple[str, ...] = ()
    language: str = "en"
    duration_ms: int = 0
    speaker_label: Optional[str] = Field(None, description="Participant identity, e.g. 'agent_jane'")
    is_multimedia: bool = False


class Conversation(BaseModel):
    """Timestamp-ordered utterances plus interaction-level statistics."""
    utterances: list[Utterance] = Field(default_factory=list)
    participants: list[str] = Field(default_factory=list)
    channel: str = "call"
    duration: float = Field(0.0, description="Total duration in seconds")
    has_multimedia: bool = False

    customer_messages: int = 0
    agent_messages: int = 0
    multimedia_messages: int = 0
    average_response_time: float = Field(0.0, description="Mean agent reply delay in seconds")
    first_response_time: Optional[float] = None


class TranscriptMetadata(BaseModel):
    duration: float
    language: Optional[str] = None
    confidence: Optional[float] = None


class TranscriptionResult(BaseModel):
    success: bool = True
    provider: str
    model: str
    conversation: Conversation
    metadata: TranscriptMetadata
    strategy: ChannelStrategy = ChannelStrategy.DIARIZED_MONO
    attempted_providers: list[str] = Field(default_factory=list)


# ── INTERACTION RECORDS (external stores) ──

class InteractionRecord(BaseModel):
    id: str
    channel: str = "call"
    direction: int = Field(0, description="0 = inbound, 1 = outbound")
    duration: float = 0.0
    agent: Optional[str] = None
    caller: Optional[str] = None
    source: Optional[str] = None
    destination: Optional[str] = None
    start_time: Optional[datetime] = None
    recording_url: Optional[str] = None
    evaluated: bool = False
    evaluation_id: Optional[str] = None


class Author(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    role: Optional[SpeakerRole] = None


class Attachment(BaseModel):
    type: Optional[str] = None
    url: Optional[str] = None
    filename: Optional[str] = None


class MessageRecord(BaseModel):
    """Chat or social-media message as stored for an interaction."""
    id: Optional[str] = None
    author: Optional[Author] = None
    direction: int = 0
    message: Optional[str] = None
    message_type: str = "text"
    attachments: list[Attachment] = Field(default_factory=list)
    created_at: datetime


class EmailAddress(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None


class EmailRecord(BaseModel):
    id: Optional[str] = None
    author: Optional[Author] = None
    direction: int = 0
    subject: Optional[str] = None
    text: Optional[str] = None
    sender: list[EmailAddress] = Field(
        default_factory=list, validation_alias=AliasChoices("sender", "from")
    )
    attachments: list[Attachment] = Field(default_factory=list)
    created_at: datetime
    received_at: Optional[datetime] = None


# ── EVALUATION FORM ──

class ScoringType(str, Enum):
    BINARY = "binary"
    VARIABLE = "variable"


class ClassificationType(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"


DEFAULT_GROUP_ID = "default"
DEFAULT_GROUP_NAME = "Default Group"
DEFAULT_MAX_SCORE = 5


class Classification(BaseModel):
    type: ClassificationType
    impact_percentage: float = Field(ge=0, le=100)


def default_classifications() -> list[Classification]:
    return [
        Classification(type=ClassificationType.NONE, impact_percentage=0),
        Classification(type=ClassificationType.MINOR, impact_percentage=10),
        Classification(type=ClassificationType.MODERATE, impact_percentage=25),
        Classification(type=ClassificationType.MAJOR, impact_percentage=50),
    ]


class FormGroup(BaseModel):
    id: str
    name: str


class FormParameter(BaseModel):
    name: str
    group: str = DEFAULT_GROUP_ID
    max_score: int = Field(DEFAULT_MAX_SCORE, ge=1, le=10)
    scoring_type: ScoringType = ScoringType.VARIABLE
    classification: ClassificationType = ClassificationType.NONE
    context: Optional[str] = Field(None, description="Evaluator guidance for this parameter")


class EvaluationForm(BaseModel):
    id: str
    name: str = ""
    parameters: list[FormParameter] = Field(default_factory=list)
    groups: list[FormGroup] = Field(
        default_factory=lambda: [FormGroup(id=DEFAULT_GROUP_ID, name=DEFAULT_GROUP_NAME)]
    )
    classifications: list[Classification] = Field(default_factory=default_classifications)

    def impact_of(self, classification: ClassificationType) -> float:
        match = next((c for c in self.classifications if c.type == classification), None)
        return match.impact_percentage if match else 0.0


# ── AI EVALUATION & SCORES ──

class ParameterResult(BaseModel):
    """Per-parameter result emitted by the AI evaluator. raw_score -1 means not applicable."""
    name: str
    raw_score: float = Field(validation_alias=AliasChoices("raw_score", "score"))
    classification: ClassificationType = ClassificationType.NONE
    explanation: Optional[str] = None

    @field_validator("classification", mode="before")
    @classmethod
    def _lenient_classification(cls, value):
        if value in (None, ""):
            return ClassificationType.NONE
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ScoredParameter(BaseModel):
    name: str
    group: str
    raw_score: float
    max_score: int
    final_score: float
    classification: ClassificationType = ClassificationType.NONE
    form_classification: ClassificationType = Field(
        ClassificationType.NONE, description="Form setting; none means the parameter is never classified"
    )
    applicable: bool = True
    explanation: Optional[str] = None


class ClassificationCounts(BaseModel):
    minor: int = 0
    moderate: int = 0
    major: int = 0


class SectionScore(BaseModel):
    id: str
    name: str
    raw_score: float = 0.0
    max_score: float = 0.0
    adjusted_score: float = 0.0
    percentage: int = 0
    classifications: ClassificationCounts = Field(default_factory=ClassificationCounts)
    highest_classification: Optional[ClassificationType] = None


class OverallScore(BaseModel):
    raw_score: float = 0.0
    adjusted_score: float = 0.0
    max_score: float = 0.0
    percentage: int = 0


class ScoreResult(BaseModel):
    sections: dict[str, SectionScore]
    overall: OverallScore
    parameters: list[ScoredParameter]


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class EvaluationResponse(BaseModel):
    """Validated body of the AI evaluator response."""
    parameters: list[ParameterResult]
    summary: str = ""
    intents: list[str] = Field(default_factory=list, validation_alias=AliasChoices("intents", "intent"))
    areas_of_improvements: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("areas_of_improvements", "areasOfImprovements")
    )
    what_the_agent_did_well: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("what_the_agent_did_well", "whatTheAgentDidWell")
    )
    customer_sentiment: list[str] = Field(
        default_factory=lambda: ["neutral"], validation_alias=AliasChoices("customer_sentiment", "customerSentiment")
    )
    agent_sentiment: list[str] = Field(
        default_factory=lambda: ["neutral"], validation_alias=AliasChoices("agent_sentiment", "agentSentiment")
    )
    usage: Usage = Field(default_factory=Usage)

    @field_validator("parameters", mode="before")
    @classmethod
    def _parameters_from_mapping(cls, value):
        # Evaluator emits {name: {score, explanation, classification}}
        if isinstance(value, dict):
            return [{"name": name, **(body or {})} for name, body in value.items()]
        return value

    @field_validator("intents", "areas_of_improvements", "what_the_agent_did_well", mode="before")
    @classmethod
    def _listify(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("customer_sentiment", "agent_sentiment", mode="before")
    @classmethod
    def _default_neutral(cls, value):
        if not value:
            return ["neutral"]
        if isinstance(value, str):
            return [value]
        return value


# ── COSTS ──

class CostModel(BaseModel):
    stt_duration: float = 0.0
    stt_provider: Optional[str] = None
    stt_cost: float = 0.0
    stt_price: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    prompt_cost: float = 0.0
    completion_cost: float = 0.0
    prompt_price: float = 0.0
    completion_price: float = 0.0
    total_cost: float = 0.0
    total_price: float = 0.0


class LedgerBalance(BaseModel):
    current_balance: float = Field(validation_alias=AliasChoices("current_balance", "currentBalance"))
    is_low: bool = Field(False, validation_alias=AliasChoices("is_low", "isLow"))


# ── CONVERSATION INSIGHTS ──

class SpeakerInsight(BaseModel):
    id: str
    message_count: int
    average_sentiment: float
    languages: list[str]


class ConversationInsights(BaseModel):
    """Aggregate view over per-utterance enrichment."""
    sentiment_distribution: dict[str, float] = Field(
        default_factory=dict, description="Percent of utterances per sentiment label"
    )
    languages: dict[str, int] = Field(default_factory=dict)
    speakers: list[SpeakerInsight] = Field(default_factory=list)
    intents: list[str] = Field(default_factory=list)
    average_profanity: float = 0.0
    flagged_profanity: list[str] = Field(default_factory=list)
    total_tokens: int = 0
    message_count: int = 0


# ── MASTER OUTPUT: EVALUATION RECORD ──

class InteractionData(BaseModel):
    agent: Optional[str] = None
    caller: Optional[str] = None
    direction: int = 0
    channel: str = "call"
    duration: float = 0.0


class EvaluationRecord(BaseModel):
    """Complete evaluation document written once per interaction after scoring succeeds."""
    interaction_id: str
    form_id: str
    interaction_data: InteractionData
    conversation: Conversation
    transcription_provider: Optional[str] = None
    evaluation: EvaluationResponse
    scores: ScoreResult
    cost: Optional[CostModel] = None
    insights: ConversationInsights = Field(default_factory=ConversationInsights)
    overrides: dict[str, ClassificationType] = Field(default_factory=dict)
    created_at: datetime
