"""In-memory key/hash store node with multicast discovery and a framed TCP protocol."""

__version__ = "0.1.0"