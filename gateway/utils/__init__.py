"""Utility functions for the gateway."""

from .user_agent import UserAgent, parse_user_agent

__all__ = [
    'UserAgent',
    'parse_user_agent',
]
