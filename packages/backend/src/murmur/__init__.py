"""Murmur — a small social network with realtime presence.

Users register, post short messages, like posts, and see who is online
and who is typing. The REST API lives under /api/v1; realtime events
flow over a Socket.IO namespace that shares the REST login cookie.
"""

__version__ = "0.1.0"
