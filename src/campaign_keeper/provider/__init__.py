"""Completion provider package exports."""

from .client import CompletionProvider, CompletionResult, OpenAIChatProvider
from .protocol import DM_PROTOCOL, DMOutput, build_messages, parse_dm_output

__all__ = [
    "CompletionProvider",
    "CompletionResult",
    "OpenAIChatProvider",
    "DM_PROTOCOL",
    "DMOutput",
    "build_messages",
    "parse_dm_output",
]
