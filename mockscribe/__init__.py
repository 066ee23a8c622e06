"""
Mockscribe - transcription pipeline for interview-practice recordings.

Takes a user-supplied audio recording and produces a time-aligned
transcript: upload validation → PCM normalization → fallback chain of
transcription backends (remote API → local worker process → in-process
model) → canonical transcript.
"""

__version__ = "0.1.0"
