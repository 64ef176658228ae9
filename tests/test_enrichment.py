"""Tests for the per-utterance sentiment/translation enrichment client."""

import asyncio
import json

import httpx
import pytest

from config.schemas import Conversation, SpeakerRole, Utterance
from services.enrichment.client import EnrichmentClient, apply_enrichment, neutral_enrichment


URL = "https://sentiment.example/analyze"


def _conversation(*texts):
    return Conversation(utterances=[
        Utterance(timestamp=1000 * (i + 1), speaker_id=SpeakerRole.AGENT if i % 2 == 0 else SpeakerRole.CUSTOMER,
                  original_text=text)
        for i, text in enumerate(texts)
    ])


def _reply(text):
    return {
        "sentiment": {"sentiment": "negative" if "angry" in text else "positive", "score": 0.9},
        "profanity": {"score": 0.1, "words": ["darn"] if "darn" in text else []},
        "intents": [{"intent": "refund"}],
        "language": "es",
        "translationInEnglish": f"EN: {text}",
        "usage": {"prompt_tokens": 10, "completion_tokens": 2, "total_tokens": 12},
    }


class TestApplyEnrichment:
    def test_merges_response(self):
        utterance = Utterance(timestamp=1, speaker_id=SpeakerRole.CUSTOMER, original_text="darn it")
        enriched = apply_enrichment(utterance, _reply("darn it"))
        assert enriched.sentiment.label == "positive"
        assert enriched.profanity.words == ("darn",)
        assert enriched.intent == ("refund",)
        assert enriched.language == "es"
        assert enriched.translated_text == "EN: darn it"
        assert utterance.translated_text is None

    def test_neutral_default(self):
        utterance = Utterance(timestamp=1, speaker_id=SpeakerRole.CUSTOMER, original_text="hello")
        neutral = neutral_enrichment(utterance)
        assert neutral.sentiment.label == "neutral"
        assert neutral.sentiment.score == 0.5
        assert neutral.profanity.score == 0.0
        assert neutral.intent == ()
        assert neutral.translated_text == "hello"


class TestEnrichmentClient:
    @pytest.mark.asyncio
    async def test_order_restored_after_out_of_order_completion(self):
        async def handler(request):
            text = json.loads(request.content)["text"]
            # First utterance finishes last
            await asyncio.sleep(0.05 if text == "first" else 0)
            return httpx.Response(200, json=_reply(text))

        client = EnrichmentClient(URL, max_concurrency=3, transport=httpx.MockTransport(handler))
        enriched, usage = await client.enrich(_conversation("first", "second", "third"))

        assert [u.original_text for u in enriched.utterances] == ["first", "second", "third"]
        assert [u.translated_text for u in enriched.utterances] == ["EN: first", "EN: second", "EN: third"]
        assert usage.total_tokens == 36

    @pytest.mark.asyncio
    async def test_failed_call_gets_neutral_default(self):
        def handler(request):
            text = json.loads(request.content)["text"]
            if text == "boom":
                return httpx.Response(500, json={"error": "down"})
            return httpx.Response(200, json=_reply(text))

        client = EnrichmentClient(URL, transport=httpx.MockTransport(handler))
        enriched, usage = await client.enrich(_conversation("angry customer", "boom"))

        assert enriched.utterances[0].sentiment.label == "negative"
        assert enriched.utterances[1].sentiment.label == "neutral"
        assert enriched.utterances[1].translated_text == "boom"
        assert usage.total_tokens == 12

    @pytest.mark.asyncio
    async def test_unconfigured_applies_neutral_defaults(self):
        enriched, usage = await EnrichmentClient(None).enrich(_conversation("a", "b"))
        assert all(u.sentiment.label == "neutral" for u in enriched.utterances)
        assert usage.total_tokens == 0

    @pytest.mark.asyncio
    async def test_empty_conversation(self):
        conversation = Conversation()
        enriched, _ = await EnrichmentClient(URL).enrich(conversation)
        assert enriched.utterances == []

    def test_enrich_sync(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=_reply("x")))
        enriched, usage = EnrichmentClient(URL, transport=transport).enrich_sync(_conversation("x"))
        assert enriched.utterances[0].intent == ("refund",)
        assert usage.prompt_tokens == 10
