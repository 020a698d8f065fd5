"""Reference domains for testing and examples."""

from .chain import ChainDomain

__all__ = ["ChainDomain"]
