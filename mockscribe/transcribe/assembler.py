"""
mockscribe.transcribe.assembler - Unify backend output into a Transcript.

Backends disagree on field names (text/transcript/transcription,
segments/chunks/words, start/timestamp[0]) and on whether they supply end
times. The assembler maps all of them onto one schema and repairs ordering
so that segments never overlap.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from mockscribe.exceptions import BadOutputError
from mockscribe.logging import logger
from mockscribe.transcribe.types import BackendKind, Transcript, TranscriptSegment

SECONDS_PER_WORD = 0.3

TEXT_KEYS = ("text", "transcript", "transcription")
SEGMENT_KEYS = ("segments", "chunks", "words")
SEGMENT_TEXT_KEYS = ("text", "transcript", "word")


def word_count(text: str) -> int:
    return len(text.split())


def _first_present(item: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = item.get(key)
        if value is not None:
            return value
    return None


def _as_seconds(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if math.isfinite(seconds) else None


def _timestamp(item: Mapping[str, Any], key: str, index: int) -> float | None:
    value = _as_seconds(item.get(key))
    if value is not None:
        return value
    stamp = item.get("timestamp")
    if isinstance(stamp, (list, tuple)) and len(stamp) > index:
        return _as_seconds(stamp[index])
    return None


class TranscriptAssembler:
    """Builds canonical Transcripts from raw backend dicts."""

    def __init__(self, seconds_per_word: float = SECONDS_PER_WORD) -> None:
        self.seconds_per_word = seconds_per_word

    def assemble(
        self,
        raw: Mapping[str, Any] | str,
        backend_kind: BackendKind | str,
    ) -> Transcript:
        """Normalize one backend response.

        Args:
            raw: Parsed backend output, or bare text
            backend_kind: Which backend produced it

        Returns:
            Transcript with ordered, non-overlapping segments

        Raises:
            BadOutputError: If raw is not a mapping or its segment list is malformed
        """
        kind = BackendKind(backend_kind)

        if isinstance(raw, str):
            return Transcript(text=raw.strip(), backend=kind.value)
        if not isinstance(raw, Mapping):
            raise BadOutputError(
                f"Unexpected {type(raw).__name__} in backend output", backend=kind.value
            )

        raw_segments = _first_present(raw, SEGMENT_KEYS) or []
        if not isinstance(raw_segments, (list, tuple)):
            raise BadOutputError("Segment list is not an array", backend=kind.value)

        segments = self.build_segments(raw_segments)

        text = _first_present(raw, TEXT_KEYS)
        text = text.strip() if isinstance(text, str) else ""
        if not text and segments:
            text = " ".join(segment.text for segment in segments)

        language = raw.get("language")
        return Transcript(
            text=text,
            segments=segments,
            backend=kind.value,
            language=language if isinstance(language, str) else None,
        )

    def build_segments(self, raw_segments: list[Any] | tuple[Any, ...]) -> list[TranscriptSegment]:
        """Convert raw segment dicts, keeping arrival order.

        A start earlier than the previous segment's end is clipped to that
        end; a missing end is estimated from the word count.
        """
        segments: list[TranscriptSegment] = []
        prev_end = 0.0

        for i, item in enumerate(raw_segments):
            if not isinstance(item, Mapping):
                logger.debug("Skipping non-object segment %d: %r", i, item)
                continue

            text = _first_present(item, SEGMENT_TEXT_KEYS)
            text = text.strip() if isinstance(text, str) else ""
            if not text:
                continue

            start = _timestamp(item, "start", 0)
            start = max(start or 0.0, 0.0, prev_end)

            end = _timestamp(item, "end", 1)
            if end is None:
                end = start + word_count(text) * self.seconds_per_word
            end = max(end, start)

            segments.append(TranscriptSegment(text=text, start=start, end=end))
            prev_end = end

        return segments


def assemble(
    raw: Mapping[str, Any] | str,
    backend_kind: BackendKind | str,
    seconds_per_word: float = SECONDS_PER_WORD,
) -> Transcript:
    """Shortcut for TranscriptAssembler(seconds_per_word).assemble(...)."""
    return TranscriptAssembler(seconds_per_word).assemble(raw, backend_kind)
