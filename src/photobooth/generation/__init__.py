"""Proxy between the browser and the hosted generation SDK."""

from .backend import GenerationBackend, HostedGenerationClient, TERMINAL_EVENTS
from .channels import SessionChannels
from .progress import ProgressHub
from .runner import GenerationRunner
from .sessions import RecentRequestCache, SessionRegistry

__all__ = [
    "GenerationBackend",
    "HostedGenerationClient",
    "TERMINAL_EVENTS",
    "SessionChannels",
    "ProgressHub",
    "GenerationRunner",
    "RecentRequestCache",
    "SessionRegistry",
]
