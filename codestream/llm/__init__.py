"""LLM gateway access."""

from codestream.llm.gateway import GatewayClient, load_gateway_token

__all__ = ["GatewayClient", "load_gateway_token"]
