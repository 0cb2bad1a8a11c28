"""
LSP adapter for recording editor edits.

This module provides:
- A language server that mirrors open documents
- didChange events converted to DocumentChange items
- A recording loop thread fed by the server
"""

from .server import create_server, start_server

__all__ = ["create_server", "start_server"]
