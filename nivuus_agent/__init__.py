"""Nivuus Agent - an interruptible console agent with durable memory."""

__version__ = "0.1.0"

from nivuus_agent.config import Config

__all__ = ["Config", "__version__"]
