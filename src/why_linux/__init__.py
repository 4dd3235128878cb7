"""why-linux: find out why a Linux host is slow right now."""

__version__ = "0.3.0"
