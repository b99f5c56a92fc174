"""Length-prefixed TCP sessions, an echo server and a load-testing client."""

__version__ = "0.1.0"