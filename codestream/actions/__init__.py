"""Action dispatch for ``<action>`` directive blocks."""

from codestream.actions.registry import CapabilityRegistry

__all__ = ["CapabilityRegistry"]
