"""
==============================================================================
FastAPI Dependencies Module
==============================================================================

Dependency providers for routes and WebSocket handlers.

Tests replace these through ``app.dependency_overrides``:

    app.dependency_overrides[get_frame_decoder] = lambda: FakeDecoder()

==============================================================================
"""

from __future__ import annotations

from medikeep.scanner import FrameDecoder, PyzbarFrameDecoder


def get_frame_decoder() -> FrameDecoder:
    """Frame decoder used by WebSocket scanning sessions."""
    return PyzbarFrameDecoder()
