"""Tests for mockscribe.transcribe.assembler module."""

from __future__ import annotations

import json
import random

import pytest

from mockscribe.exceptions import BadOutputError
from mockscribe.transcribe.assembler import TranscriptAssembler, assemble, word_count
from mockscribe.transcribe.types import BackendKind


@pytest.fixture
def assembler() -> TranscriptAssembler:
    return TranscriptAssembler()


class TestFieldNames:
    def test_mixed_field_names(self, assembler, sample_backend_response) -> None:
        transcript = assembler.assemble(sample_backend_response, BackendKind.REMOTE)

        assert transcript.text.startswith("Tell me about yourself.")
        assert [s.text for s in transcript.segments] == [
            "Tell me about yourself.",
            "I have five years of experience.",
        ]
        assert transcript.segments[0].start == 0.0
        assert transcript.segments[0].end == 1.8
        assert transcript.segments[1].start == 2.1
        assert transcript.backend == "remote"

    def test_transcription_key(self, assembler) -> None:
        transcript = assembler.assemble({"transcription": " hello "}, "remote")
        assert transcript.text == "hello"
        assert transcript.segments == []

    def test_words_list(self, assembler) -> None:
        raw = {
            "text": "hi there",
            "words": [
                {"word": "hi", "start": 0.0, "end": 0.2},
                {"word": "there", "start": 0.3, "end": 0.6},
            ],
        }
        transcript = assembler.assemble(raw, BackendKind.IN_PROCESS)
        assert [s.text for s in transcript.segments] == ["hi", "there"]

    def test_text_from_segments_when_missing(self, assembler) -> None:
        raw = {"segments": [{"text": "first", "start": 0, "end": 1}, {"text": "second"}]}
        assert assembler.assemble(raw, "subprocess").text == "first second"

    def test_bare_string(self, assembler) -> None:
        transcript = assembler.assemble("  just text  ", BackendKind.SUBPROCESS)
        assert transcript.text == "just text"
        assert transcript.segments == []

    def test_language_kept(self, assembler) -> None:
        transcript = assembler.assemble({"text": "bonjour", "language": "fr"}, "in_process")
        assert transcript.language == "fr"

    def test_to_dict_shape(self, assembler, sample_backend_response) -> None:
        data = assembler.assemble(sample_backend_response, "remote").to_dict()
        assert set(data) == {"text", "chunks"}
        assert set(data["chunks"][0]) == {"text", "start", "end"}


class TestTimestamps:
    def test_end_synthesized_from_word_count(self, assembler) -> None:
        raw = {"segments": [{"text": "one two three", "start": 1.0}]}
        segment = assembler.assemble(raw, "remote").segments[0]
        assert segment.end == pytest.approx(1.9)

    def test_timestamp_pair_with_open_end(self, assembler) -> None:
        raw = {"chunks": [{"text": "still talking", "timestamp": [4.0, None]}]}
        segment = assembler.assemble(raw, "remote").segments[0]
        assert segment.start == 4.0
        assert segment.end == pytest.approx(4.6)

    def test_custom_seconds_per_word(self) -> None:
        raw = {"segments": [{"text": "a b", "start": 0.0}]}
        segment = assemble(raw, "remote", seconds_per_word=0.5).segments[0]
        assert segment.end == pytest.approx(1.0)

    def test_missing_start_defaults_to_zero(self, assembler) -> None:
        segment = assembler.assemble({"segments": [{"text": "x", "end": 0.5}]}, "remote").segments[0]
        assert segment.start == 0.0

    def test_negative_start_clamped(self, assembler) -> None:
        raw = {"segments": [{"text": "x", "start": -2.0, "end": 1.0}]}
        assert assembler.assemble(raw, "remote").segments[0].start == 0.0

    def test_overlap_clipped_to_previous_end(self, assembler) -> None:
        raw = {
            "segments": [
                {"text": "first", "start": 0.0, "end": 2.0},
                {"text": "second", "start": 1.5, "end": 3.0},
            ]
        }
        second = assembler.assemble(raw, "remote").segments[1]
        assert second.start == 2.0
        assert second.end == 3.0

    def test_out_of_order_segment_kept_in_place(self, assembler) -> None:
        raw = {
            "segments": [
                {"text": "late", "start": 5.0, "end": 6.0},
                {"text": "early", "start": 1.0, "end": 2.0},
            ]
        }
        segments = assembler.assemble(raw, "remote").segments
        assert [s.text for s in segments] == ["late", "early"]
        assert segments[1].start == 6.0
        assert segments[1].end == 6.0

    def test_non_numeric_times_ignored(self, assembler) -> None:
        raw = {"segments": [{"text": "hm", "start": "soon", "end": True}]}
        segment = assembler.assemble(raw, "remote").segments[0]
        assert segment.start == 0.0
        assert segment.end == pytest.approx(0.3)

    def test_non_finite_times_ignored(self, assembler) -> None:
        raw = {
            "segments": [
                {"text": "hi there", "start": float("nan"), "end": 1.0},
                {"text": "next", "start": "nan", "end": 2.0},
                {"text": "last", "start": 3.0, "end": float("inf")},
                {"text": "end", "timestamp": ["-inf", "Infinity"]},
            ]
        }
        transcript = assembler.assemble(raw, "subprocess")

        assert [(s.start, s.end) for s in transcript.segments] == [
            (0.0, 1.0),
            (1.0, 2.0),
            (3.0, pytest.approx(3.3)),
            (pytest.approx(3.3), pytest.approx(3.6)),
        ]
        json.dumps(transcript.to_dict(), allow_nan=False)

    def test_segments_never_overlap(self, assembler) -> None:
        rng = random.Random(42)
        for _ in range(20):
            raw_segments = []
            for i in range(12):
                start = rng.uniform(0, 30)
                item = {"text": f"word {i}", "start": start}
                if rng.random() < 0.7:
                    item["end"] = start + rng.uniform(-1, 3)
                raw_segments.append(item)
            rng.shuffle(raw_segments)

            segments = assembler.assemble({"segments": raw_segments}, "remote").segments
            prev_end = 0.0
            for segment in segments:
                assert segment.start >= prev_end
                assert segment.end >= segment.start
                prev_end = segment.end


class TestMalformed:
    def test_non_mapping_raises(self, assembler) -> None:
        with pytest.raises(BadOutputError):
            assembler.assemble(["not", "a", "dict"], "remote")

    def test_segments_not_a_list(self, assembler) -> None:
        with pytest.raises(BadOutputError):
            assembler.assemble({"text": "x", "segments": "oops"}, "remote")

    def test_skips_blank_and_non_object_segments(self, assembler) -> None:
        raw = {"segments": [{"text": "  "}, "junk", None, {"text": "kept", "start": 0}]}
        segments = assembler.assemble(raw, "remote").segments
        assert [s.text for s in segments] == ["kept"]

    def test_unknown_backend_kind(self, assembler) -> None:
        with pytest.raises(ValueError):
            assembler.assemble({"text": "x"}, "carrier-pigeon")


class TestWordCount:
    def test_counts_whitespace_separated_words(self) -> None:
        assert word_count("  one two\tthree\n") == 3
        assert word_count("") == 0
