"""Generation runs — one prompt streamed through the directive parser.

``GenerationService`` drives a run end to end; ``GenerationStore`` keeps
each run's events for poll-based retrieval and evicts old runs.
"""

from codestream.generation.service import GenerationService, parse_text_stream
from codestream.generation.store import (
    GenerationState,
    GenerationStatus,
    GenerationStore,
    run_periodic_sweep,
)

__all__ = [
    "GenerationService",
    "GenerationState",
    "GenerationStatus",
    "GenerationStore",
    "parse_text_stream",
    "run_periodic_sweep",
]
