"""Sentiment/translation enrichment client — per-utterance fan-out with a neutral fallback.

Each utterance is POSTed to the sentiment endpoint as `{text}`. Calls run concurrently
(bounded by a semaphore); the enriched conversation is re-sorted by timestamp, never by
completion order. A failed call never fails the pipeline: the utterance gets a neutral
default instead.
"""

import asyncio

import httpx
from loguru import logger

from config.schemas import Conversation, Profanity, Sentiment, Usage, Utterance


def _intent_names(raw) -> tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, (str, dict)):
        raw = [raw]
    names = []
    for item in raw:
        if isinstance(item, dict):
            name = item.get("intent") or item.get("name") or item.get("label")
        else:
            name = item
        if name:
            names.append(str(name))
    return tuple(names)


def neutral_enrichment(utterance: Utterance) -> Utterance:
    """Default applied when the sentiment endpoint fails for an utterance."""
    return utterance.model_copy(update={
        "sentiment": Sentiment(label="neutral", score=0.5),
        "profanity": Profanity(score=0.0, words=()),
        "intent": (),
        "language": utterance.language or "en",
        "translated_text": utterance.original_text,
    })


def apply_enrichment(utterance: Utterance, data: dict) -> Utterance:
    """Merge one sentiment-endpoint response into an utterance (returns a new Utterance)."""
    sentiment = data.get("sentiment") or {}
    profanity = data.get("profanity") or {}
    return utterance.model_copy(update={
        "sentiment": Sentiment(
            label=str(sentiment.get("sentiment") or sentiment.get("label") or "neutral"),
            score=float(sentiment.get("score", 0.5)),
        ),
        "profanity": Profanity(
            score=float(profanity.get("score", 0.0)),
            words=tuple(profanity.get("words") or ()),
        ),
        "intent": _intent_names(data.get("intents")),
        "language": data.get("language") or utterance.language,
        "translated_text": data.get("translationInEnglish") or utterance.original_text,
    })


class EnrichmentClient:
    def __init__(
        self,
        url: str | None,
        *,
        max_concurrency: int = 8,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.url)

    async def _enrich_one(
        self, client: httpx.AsyncClient, semaphore: asyncio.Semaphore, utterance: Utterance
    ) -> tuple[Utterance, Usage]:
        async with semaphore:
            try:
                resp = await client.post(self.url, json={"text": utterance.original_text})
                resp.raise_for_status()
                data = resp.json()
                usage = Usage(**{k: v for k, v in (data.get("usage") or {}).items() if k in Usage.model_fields})
                return apply_enrichment(utterance, data), usage
            except Exception as e:
                logger.warning(f"Sentiment enrichment failed (using neutral default): {e}")
                return neutral_enrichment(utterance), Usage()

    async def enrich(self, conversation: Conversation) -> tuple[Conversation, Usage]:
        """Enrich every utterance concurrently.

        Returns:
            (enriched conversation, summed token usage)
        """
        if not conversation.utterances:
            return conversation, Usage()
        if not self.is_configured():
            logger.warning("Sentiment endpoint not configured, applying neutral defaults")
            enriched = [neutral_enrichment(u) for u in conversation.utterances]
            return conversation.model_copy(update={"utterances": enriched}), Usage()

        semaphore = asyncio.Semaphore(self.max_concurrency)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            results = await asyncio.gather(
                *(self._enrich_one(client, semaphore, u) for u in conversation.utterances)
            )

        # Stable sort restores timestamp order regardless of completion order
        enriched = sorted((u for u, _ in results), key=lambda u: u.timestamp)
        usage = Usage(
            prompt_tokens=sum(x.prompt_tokens for _, x in results),
            completion_tokens=sum(x.completion_tokens for _, x in results),
            total_tokens=sum(x.total_tokens for _, x in results),
        )
        logger.info(f"Enriched {len(enriched)} utterances ({usage.total_tokens} tokens)")
        return conversation.model_copy(update={"utterances": enriched}), usage

    def enrich_sync(self, conversation: Conversation) -> tuple[Conversation, Usage]:
        """Synchronous wrapper for callers outside an event loop."""
        return asyncio.run(self.enrich(conversation))
