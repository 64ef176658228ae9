"""Evaluator instruction builder and transcript text formatter.

One builder serves every interaction type. Calls, text conversations and email threads
share the parameter list, response-format rules and classification rules; each type adds
its own notes block, and only calls ask for silence periods.
"""

from config.schemas import Conversation, EvaluationForm, InteractionType, ScoringType


TEXT_CHANNELS = {"whatsapp", "fb_messenger", "facebook", "instagram_dm", "chat", "email", "sms"}
EMAIL_CHANNELS = {"email"}


def is_text_channel(channel: str | None) -> bool:
    return (channel or "").lower() in TEXT_CHANNELS


def interaction_type_for_channel(channel: str | None) -> InteractionType:
    channel = (channel or "").lower()
    if channel in EMAIL_CHANNELS:
        return InteractionType.EMAIL
    if channel in TEXT_CHANNELS:
        return InteractionType.TEXT_CONVERSATION
    return InteractionType.CALL


_SUBJECTS = {
    InteractionType.CALL: "a call center interaction",
    InteractionType.TEXT_CONVERSATION: "a text conversation",
    InteractionType.EMAIL: "an email interaction",
}

_NOTES = {
    InteractionType.TEXT_CONVERSATION: [
        "Response time and efficiency",
        "Clarity and helpfulness of written communication",
        "Professional tone and language",
        "Resolution of customer queries through text",
    ],
    InteractionType.EMAIL: [
        "Professional tone and language in written communication",
        "Clarity and completeness of email responses",
        "Appropriate use of email etiquette (subject lines, signatures, etc.)",
        "Timely responses to customer inquiries",
        "Proper handling of email threads and context",
        "Effective resolution of customer issues via email",
    ],
}

_NOTE_HEADINGS = {
    InteractionType.TEXT_CONVERSATION: "This is a text-based conversation.",
    InteractionType.EMAIL: "This is an email interaction.",
}


def build_instructions(
    form: EvaluationForm,
    interaction_type: InteractionType = InteractionType.CALL,
    sample_response: str | None = None,
) -> str:
    """Render evaluator instructions for a form.

    Args:
        form: Evaluation form; parameters are listed grouped by form group
        interaction_type: Selects the notes block and whether silence periods are requested
        sample_response: Optional example response appended verbatim (AIQA_SAMPLE_RESPONSE)

    Returns:
        Instruction text for the AI evaluator
    """
    lines = [
        f"You are a quality analyst evaluating {_SUBJECTS[interaction_type]}.",
        "Based on the following evaluation criteria, please assess the interaction and provide scores:",
        "",
    ]

    group_names = {g.id: g.name for g in form.groups}
    index = 0
    for group_id in list(dict.fromkeys([g.id for g in form.groups] + [p.group for p in form.parameters])):
        params = [p for p in form.parameters if p.group == group_id]
        if not params:
            continue
        lines.append(f"## {group_names.get(group_id, group_id)}")
        for param in params:
            index += 1
            lines.append(f"{index}. {param.name}:")
            if param.context:
                lines.append(f"   Context: {param.context}")
            lines.append(f"   Max Score: {param.max_score}")
            lines.append(f"   Scoring Type: {param.scoring_type.value}")
            if param.scoring_type == ScoringType.BINARY:
                lines.append(f"   Scoring Type Meaning: binary = either 0 or {param.max_score} (max score)")
            else:
                lines.append(f"   Scoring Type Meaning: variable = between 0 and {param.max_score} (max score)")
            lines.append(f"   Classification: {param.classification.value}")
            lines.append("")

    lines += [
        "Please analyze the interaction and provide:",
        "- A score for each criterion (0 to max score)",
        "- A score of -1 for any criterion that is not relevant to this interaction",
        "- A detailed explanation for each score",
        "- An overall summary of the interaction",
        "- The customer's intents",
        "- Customer and agent sentiment throughout the interaction",
    ]

    if interaction_type in _NOTES:
        lines += ["", f"Note: {_NOTE_HEADINGS[interaction_type]} Please consider:"]
        lines += [f"- {note}" for note in _NOTES[interaction_type]]

    lines.append("")
    if interaction_type == InteractionType.CALL:
        lines.append(
            "silencePeriods: identify any periods of silence longer than 3 seconds with their "
            "timestamps and duration. It should be an array of objects with fromTimeStamp, "
            "toTimeStamp and silenceDuration."
        )
    lines += [
        "areasOfImprovements: find the things the agent could have done better. It should be an array.",
        "whatTheAgentDidWell: find the areas where the agent did well in the interaction. It should be an array.",
        "Provide a score for each criterion with an explanation of your reasoning, "
        "and an overall assessment of the interaction.",
        "",
        "Assign a classification tag to each criterion response. The classification tags are "
        "none, minor, moderate, major. If the criterion's classification is none, do not apply "
        "any classification.",
        "When returning the response, use the criterion name exactly as given as the parameter name.",
    ]

    text = "\n".join(lines)
    if sample_response:
        text += "\n" + sample_response
    return text


def format_transcript_text(conversation: Conversation) -> str:
    """One line per utterance, preferring the English translation when present."""
    interaction_type = interaction_type_for_channel(conversation.channel)
    out = []
    if interaction_type == InteractionType.EMAIL:
        out.append("=== EMAIL CONVERSATION TRANSCRIPT ===\r\n")
        out.append(f"Total Emails: {len(conversation.utterances)}\r\n")
        out.append(f"Duration: {round(conversation.duration)} seconds\r\n\r\n")

    for u in conversation.utterances:
        text = u.translated_text or u.original_text
        out.append(f"timestamp: {u.timestamp}, speaker_id: {u.speaker_id.value}, text: {text}\r\n")
    return "".join(out)
