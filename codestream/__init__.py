"""codestream — turn streamed LLM directive output into files, actions and events."""

__version__ = "0.1.0"
