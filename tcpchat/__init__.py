"""A small threaded TCP chat server and client."""

__version__ = "0.1.0"
