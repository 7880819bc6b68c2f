"""hyperevolve MCP server: exposes the rewrite simulation as tools for AI agents."""

from hyperevolve.mcp.server import mcp, run_server

__all__ = ["mcp", "run_server"]
