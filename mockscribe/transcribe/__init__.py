"""
mockscribe.transcribe - Multi-backend transcription with fallback.

Tries the remote API, then a local Whisper worker process, then an
in-process faster-whisper model, and unifies whichever answers first into
one transcript schema.
"""

from __future__ import annotations
