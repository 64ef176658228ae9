"""Conversation insights — sentiment, language and speaker breakdown of an enriched conversation."""

from collections import Counter

from config.schemas import Conversation, ConversationInsights, SpeakerInsight


def summarize_conversation(conversation: Conversation, total_tokens: int = 0) -> ConversationInsights:
    utterances = conversation.utterances
    count = len(utterances)
    if not count:
        return ConversationInsights(total_tokens=total_tokens)

    sentiments = Counter(u.sentiment.label for u in utterances)
    distribution = {label: 0.0 for label in ("positive", "negative", "neutral")}
    distribution.update({label: round(100 * n / count, 2) for label, n in sentiments.items()})

    speakers = []
    for role in dict.fromkeys(u.speaker_id for u in utterances):
        own = [u for u in utterances if u.speaker_id == role]
        speakers.append(SpeakerInsight(
            id=role.value,
            message_count=len(own),
            average_sentiment=round(sum(u.sentiment.score for u in own) / len(own), 4),
            languages=list(dict.fromkeys(u.language for u in own if u.language)),
        ))

    flagged = list(dict.fromkeys(w for u in utterances for w in u.profanity.words))

    return ConversationInsights(
        sentiment_distribution=distribution,
        languages=dict(Counter(u.language for u in utterances if u.language)),
        speakers=speakers,
        intents=list(dict.fromkeys(i for u in utterances for i in u.intent)),
        average_profanity=round(sum(u.profanity.score for u in utterances) / count, 4),
        flagged_profanity=flagged,
        total_tokens=total_tokens,
        message_count=count,
    )
