"""Shared route dependencies for the realtime objects on app.state.

Learn: main.create_app() builds the Socket.IO server, the Broadcaster and
the RealtimeGateway once and hangs them on app.state. Routes reach them
through these dependencies, so tests can swap them with
app.dependency_overrides like any other dependency.
"""

from fastapi import Request

from murmur.realtime.broadcaster import EventNotifier
from murmur.realtime.gateway import RealtimeGateway


def get_notifier(request: Request) -> EventNotifier:
    return request.app.state.broadcaster


def get_gateway(request: Request) -> RealtimeGateway:
    return request.app.state.gateway
