"""Segment builder — coalesce provider tokens into sentence-level segments.

Every adapter funnels its words/tokens through `build_segments`, so the boundary rule is the
same regardless of which provider produced the transcript.
"""

from config.schemas import Segment, Token


SENTENCE_END = (".", "?", "!")
MAX_GAP_SECONDS = 1.0


def _flush(tokens: list[Token]) -> Segment:
    text = " ".join(t.text.strip() for t in tokens if t.text.strip()).strip()
    language = next((t.language for t in tokens if t.language), None)
    return Segment(
        start=tokens[0].start,
        end=tokens[-1].end,
        speaker=tokens[0].speaker,
        language=language,
        text=text,
    )


def build_segments(tokens: list[Token]) -> list[Segment]:
    """Group tokens into segments.

    A new segment starts when the speaker changes, when the current token ends a sentence,
    or when the gap to the next token exceeds one second. Whitespace-only segments are
    discarded.

    Args:
        tokens: Provider tokens in playback order

    Returns:
        List of Segment objects in playback order
    """
    segments: list[Segment] = []
    current: list[Token] = []

    for i, token in enumerate(tokens):
        if not token.text.strip():
            continue
        if current and token.speaker != current[-1].speaker:
            segments.append(_flush(current))
            current = []
        current.append(token)

        nxt = next((t for t in tokens[i + 1:] if t.text.strip()), None)
        ends_sentence = token.text.strip().endswith(SENTENCE_END)
        long_pause = nxt is not None and (nxt.start - token.end) > MAX_GAP_SECONDS
        if ends_sentence or long_pause:
            segments.append(_flush(current))
            current = []

    if current:
        segments.append(_flush(current))

    return [s for s in segments if s.text]
