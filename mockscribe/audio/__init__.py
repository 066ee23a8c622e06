"""
mockscribe.audio - Upload validation and PCM normalization.
"""

from __future__ import annotations
