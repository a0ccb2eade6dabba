"""MCP stdio command surface for the sync service."""
