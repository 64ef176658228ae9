"""Conversation normalizer — voice transcripts, chat/social messages and email threads
all become one canonical, timestamp-ordered Conversation.

Timestamps are absolute epoch milliseconds so voice and text utterances interleave
consistently. Multimedia content is kept as a bracketed placeholder, never dropped; empty
utterances are.
"""

from datetime import datetime, timezone
from statistics import mean

from loguru import logger

from config.schemas import (
    Attachment, Conversation, EmailRecord, InteractionRecord, MessageRecord,
    Segment, SpeakerRole, Utterance,
)
from services.asr.speakers import SpeakerRoleResolver


ATTACHMENT_DESCRIPTIONS = {
    "image": "[Image shared]",
    "video": "[Video shared]",
    "audio": "[Voice message]",
    "document": "[Document shared]",
    "location": "[Location shared]",
}
UNAVAILABLE_CONTENT = "[Message content not available]"


def to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(round(value.timestamp() * 1000))


def describe_attachment(attachment: Attachment) -> str:
    kind = (attachment.type or "").lower()
    if kind in ATTACHMENT_DESCRIPTIONS:
        return ATTACHMENT_DESCRIPTIONS[kind]
    return f"[{(attachment.type or 'File').capitalize()} shared]"


def describe_attachments(attachments: list[Attachment]) -> str:
    if not attachments:
        return "[Multimedia message]"
    return " ".join(describe_attachment(a) for a in attachments)


def role_from_direction(direction: int) -> SpeakerRole:
    """Inbound (0) records come from the customer; anything else from the agent."""
    return SpeakerRole.CUSTOMER if direction == 0 else SpeakerRole.AGENT


# ── Conversation assembly ──

def _response_times(utterances: list[Utterance]) -> list[float]:
    """Seconds between a customer turn and the agent turn that follows it."""
    delays = []
    for prev, cur in zip(utterances, utterances[1:]):
        if prev.speaker_id == SpeakerRole.CUSTOMER and cur.speaker_id == SpeakerRole.AGENT:
            delays.append((cur.timestamp - prev.timestamp) / 1000.0)
    return delays


def _first_response_time(utterances: list[Utterance]) -> float | None:
    first_customer = next((u for u in utterances if u.speaker_id == SpeakerRole.CUSTOMER), None)
    if first_customer is None:
        return None
    reply = next(
        (u for u in utterances
         if u.speaker_id == SpeakerRole.AGENT and u.timestamp >= first_customer.timestamp),
        None,
    )
    if reply is None:
        return None
    return (reply.timestamp - first_customer.timestamp) / 1000.0


def build_conversation(
    utterances: list[Utterance],
    *,
    channel: str,
    duration: float | None = None,
) -> Conversation:
    """Sort (stable on ties), drop empty utterances, and compute conversation statistics.

    Args:
        utterances: Utterances in insertion order
        channel: Interaction channel name
        duration: Total duration in seconds; derived from first/last timestamps when None
    """
    kept = [u for u in utterances if u.original_text and u.original_text.strip()]
    dropped = len(utterances) - len(kept)
    if dropped:
        logger.debug(f"Dropped {dropped} empty utterance(s)")

    # sorted() is stable, so equal timestamps keep insertion order
    ordered = sorted(kept, key=lambda u: u.timestamp)

    if duration is None:
        duration = (ordered[-1].timestamp - ordered[0].timestamp) / 1000.0 if ordered else 0.0

    participants = list(dict.fromkeys(u.speaker_label or u.speaker_id.value for u in ordered))
    delays = _response_times(ordered)
    multimedia = sum(1 for u in ordered if u.is_multimedia)

    return Conversation(
        utterances=ordered,
        participants=participants,
        channel=channel,
        duration=duration,
        has_multimedia=multimedia > 0,
        customer_messages=sum(1 for u in ordered if u.speaker_id == SpeakerRole.CUSTOMER),
        agent_messages=sum(1 for u in ordered if u.speaker_id == SpeakerRole.AGENT),
        multimedia_messages=multimedia,
        average_response_time=round(mean(delays), 2) if delays else 0.0,
        first_response_time=_first_response_time(ordered),
    )


# ── Voice ──

def normalize_voice(
    segments: list[Segment],
    *,
    start_time_ms: int = 0,
    channel: str = "call",
    duration: float = 0.0,
    agent: str | None = None,
    customer: str | None = None,
) -> Conversation:
    """Turn provider segments into a Conversation on the absolute interaction timeline.

    Args:
        segments: Segments with raw provider speaker markers (or explicit roles)
        start_time_ms: Interaction start in epoch ms; segment offsets are added to it
        channel: Interaction channel
        duration: Recording duration in seconds
        agent: Agent identity hint, used for the participant label
        customer: Customer identity hint, used for the participant label
    """
    resolver = SpeakerRoleResolver()
    labels = {
        SpeakerRole.AGENT: f"agent_{agent}" if agent else "agent",
        SpeakerRole.CUSTOMER: f"customer_{customer}" if customer else "customer",
    }

    utterances = []
    for position, segment in enumerate(segments):
        role = resolver.resolve(segment.speaker, position)
        utterances.append(Utterance(
            timestamp=start_time_ms + int(round(segment.start * 1000)),
            speaker_id=role,
            original_text=segment.text.strip(),
            language=segment.language or "en",
            duration_ms=max(0, int(round((segment.end - segment.start) * 1000))),
            speaker_label=labels[role],
        ))

    return build_conversation(utterances, channel=channel, duration=duration or None)


# ── Chat / social messages ──

def _message_text(record: MessageRecord) -> tuple[str, bool]:
    kind = (record.message_type or "text").lower()
    if kind == "text":
        text = (record.message or "").strip()
        if record.attachments:
            return f"{text} {describe_attachments(record.attachments)}".strip(), True
        return text, False
    if kind == "multimedia":
        return describe_attachments(record.attachments), True
    return UNAVAILABLE_CONTENT, False


def _message_label(record: MessageRecord, role: SpeakerRole, interaction: InteractionRecord | None) -> str:
    if record.author and record.author.id:
        return f"{role.value}_{record.author.id}"
    if interaction is not None:
        fallback = interaction.source if role == SpeakerRole.CUSTOMER else (
            interaction.destination or interaction.agent
        )
        if fallback:
            return f"{role.value}_{fallback}"
    return role.value


def normalize_messages(
    messages: list[MessageRecord],
    *,
    channel: str,
    interaction: InteractionRecord | None = None,
) -> Conversation:
    """Normalize chat/social messages (WhatsApp, Messenger, Instagram, SMS, web chat)."""
    utterances = []
    for record in messages:
        role = record.author.role if record.author and record.author.role else role_from_direction(record.direction)
        text, multimedia = _message_text(record)
        utterances.append(Utterance(
            timestamp=to_epoch_ms(record.created_at),
            speaker_id=role,
            original_text=text,
            speaker_label=_message_label(record, role, interaction),
            is_multimedia=multimedia,
        ))
    return build_conversation(utterances, channel=channel)


# ── Email ──

def _email_label(record: EmailRecord, role: SpeakerRole) -> str:
    if record.author and record.author.id:
        return record.author.id
    if record.sender:
        first = record.sender[0]
        if first.address:
            return first.address
        if first.name:
            return first.name
    return role.value


def normalize_emails(emails: list[EmailRecord], *, channel: str = "email") -> Conversation:
    """Normalize an email thread; each email becomes one utterance at its received time."""
    utterances = []
    for record in emails:
        role = record.author.role if record.author and record.author.role else role_from_direction(record.direction)
        text = (record.text or "").strip()
        if record.attachments:
            text = f"{text} {describe_attachments(record.attachments)}".strip()
        utterances.append(Utterance(
            timestamp=to_epoch_ms(record.received_at or record.created_at),
            speaker_id=role,
            original_text=text,
            speaker_label=_email_label(record, role),
            is_multimedia=bool(record.attachments),
        ))
    return build_conversation(utterances, channel=channel)
