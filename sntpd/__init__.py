"""A small SNTP server and client, with the threaded reactor it runs on."""

__version__ = "0.1.0"
__all__ = ["protocol", "client", "reactor", "server"]