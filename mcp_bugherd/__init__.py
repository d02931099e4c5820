"""BugHerd MCP Server - Model Context Protocol server for BugHerd task boards."""

__version__ = "0.1.0"
