"""sdk.transport - Subscription transport layer.

Public API:
    - TransportBase: Abstract base class for transport adapters
    - SubscriptionHandle: Lightweight subscription handle
    - createTransport: Factory function for creating transports from URIs
    - registerAdapter: Register custom transport adapters
    - WebSocketTransport: aiohttp WebSocket client with automatic reconnect

Default Adapters:
    - WebSocketTransport: Registered for 'ws' and 'wss' schemes

Usage:
    from sdk.transport import createTransport

    uri = 'wss://jetstream2.us-east.bsky.network/subscribe'
    transport = createTransport(uri)
    await transport.connect(uri)

    async def handler(subject, payload):
        print(f"Received on {subject}: {payload}")

    handle = await transport.subscribe('app.bsky.feed.post', handler)

    # Later
    await handle.unsubscribe()
    await transport.close()
"""

from .transportBase import TransportBase, SubscriptionHandle
from .transportFactory import (
    createTransport,
    registerAdapter,
    TransportRegistry,
    getDefaultRegistry
)
from .websocketTransport import WebSocketTransport

# Register default adapters
registerAdapter('ws', WebSocketTransport)
registerAdapter('wss', WebSocketTransport)

__all__ = [
    'TransportBase',
    'SubscriptionHandle',
    'createTransport',
    'registerAdapter',
    'TransportRegistry',
    'getDefaultRegistry',
    'WebSocketTransport'
]
