"""
Agents package for MediDispatch backend.
"""

from .base_agent import BaseAgent
from .expiry_monitor import ExpiryMonitor

__all__ = [
    "BaseAgent",
    "ExpiryMonitor"
]
