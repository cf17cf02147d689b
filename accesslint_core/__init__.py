"""
AccessLint Core
===============

Conversation context management, token usage accounting, retry/backoff and
the strict XML tool-call protocol for multi-provider LLM chat clients.
"""

__version__ = "0.1.0"
