"""A small proof-of-work blockchain whose nodes share blocks over UDP multicast."""

__version__ = "0.1.0"
__all__ = ["chain", "p2p", "cli"]