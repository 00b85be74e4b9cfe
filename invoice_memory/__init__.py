"""Invoice correction memory: learns field corrections from human review."""

from .core.config import VERSION

__version__ = VERSION
