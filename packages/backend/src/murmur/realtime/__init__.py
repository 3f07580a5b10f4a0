"""Realtime layer — presence, typing indicators, event fan-out.

Learn: Events flow through one Socket.IO namespace (/sns):
1. Clients connect with the same auth cookie the REST API uses
2. The gateway authenticates, updates the presence table, and joins
   the session to the single broadcast room ("main")
3. CRUD services call the Broadcaster after committing their writes
4. The Broadcaster emits to the room — every connected tab receives it

Everything here is in-memory and per-process. Nothing is persisted and
nothing is replayed: a client that reconnects pulls a fresh presence
snapshot and re-reads posts over HTTP.
"""
