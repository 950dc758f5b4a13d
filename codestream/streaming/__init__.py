"""Streaming module — incremental directive parsing of LLM output.

Provides the chunk decoder, the stream buffer, one extractor per directive
kind, and the parser that drives them chunk by chunk.
"""

from codestream.streaming.buffer import StreamBuffer
from codestream.streaming.decoder import iter_sse_events, iter_text_deltas
from codestream.streaming.events import DirectiveEvent, EventEmitter
from codestream.streaming.parser import GenerationResult, StreamingDirectiveParser

__all__ = [
    "DirectiveEvent",
    "EventEmitter",
    "GenerationResult",
    "StreamBuffer",
    "StreamingDirectiveParser",
    "iter_sse_events",
    "iter_text_deltas",
]
