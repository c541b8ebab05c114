"""Treeindex MCP server. Exposes forest operations as tools for AI agents."""

from treeindex.mcp.server import mcp, run_server

__all__ = ["mcp", "run_server"]
