"""
TransportBase: Abstract base for bytes-in subscription transports.
connect(uri, **opts) -> subscribe(subject, handler) -> close()
Adapters own reconnection; handlers only ever see payload bytes.
"""


# Imports
import time, uuid
from abc import ABC, abstractmethod
from typing import Callable, Optional, Dict, Any

from sdk.logging import getLogger


class SubscriptionHandle:
    """
    Handle for one subject on one transport instance.

    Read-only fields:
        - subject: Subject the handler was registered for
        - active: False once unsubscribed or the transport closed
        - messagesSeen: Payloads handed to the handler
        - lastMessageAt: Epoch seconds of the last delivery (None before the first)"""


    def __init__(self, subject: str, unsubscribeCallback: Callable):
        self._subject = subject
        self._active = True
        self._messagesSeen = 0
        self._lastMessageAt: Optional[float] = None
        self._unsubscribeCallback = unsubscribeCallback

    @property
    def subject(self) -> str:
        return self._subject

    @property
    def active(self) -> bool:
        return self._active

    @property
    def messagesSeen(self) -> int:
        return self._messagesSeen

    @property
    def lastMessageAt(self) -> Optional[float]:
        return self._lastMessageAt

    def _recordMessage(self):
        self._messagesSeen += 1
        self._lastMessageAt = time.time()

    def toDict(self) -> Dict[str, Any]:
        return {'active': self._active, 'messagesSeen': self._messagesSeen, 'lastMessageAt': self._lastMessageAt}

    def _deactivate(self):
        self._active = False

    async def unsubscribe(self):
        """Unsubscribe from this subject (local instance only)."""
        if self._active:
            self._active = False
            await self._unsubscribeCallback(self)


class TransportBase(ABC):
    """
    Abstract base class for transport adapters.

    Lifecycle States:
        - CLOSED: Not connected, or shut down
        - READY: Transport is operational (adapter may be mid-reconnect)"""


    def __init__(self):
        self._logger = getLogger()
        self._state = 'CLOSED'
        self._endpoint = None
        self._connectedAt = None
        self._instanceId = str(uuid.uuid4())[:8]
        self._subscriptions: Dict[str, SubscriptionHandle] = {}


    # ===== Core Abstract Methods (Must Implement) =====
    @abstractmethod
    async def connect(self, uri: str, **opts) -> None:
        pass


    @abstractmethod
    async def subscribe(self, subject: str, handler: Callable[[str, bytes], Any]) -> SubscriptionHandle:
        pass


    @abstractmethod
    async def close(self, timeout: Optional[float] = None) -> None:
        pass


    # ===== Core Properties =====
    @property
    @abstractmethod
    def transportType(self) -> str:
        pass

    @property
    def state(self) -> str:
        return self._state


    @property
    def isConnected(self) -> bool:
        return self._state == 'READY'


    # ===== Optional Methods (Safe Base Defaults) =====
    def setQueryParam(self, key: str, value: Optional[Any]) -> None:
        pass  # Only adapters with connect-time parameters use this


    def status(self) -> Dict[str, Any]:
        active = {subject: handle.toDict() for subject, handle in self._subscriptions.items() if handle.active}
        return {'state': self._state, 'endpoint': self._endpoint, 'sinceTs': self._connectedAt,
                'subs': len(active), 'subjects': active}


    # ===== Helper Methods =====
    def _validateOptions(self, opts: Dict[str, Any], valid: set):
        unknown = set(opts) - valid
        if unknown:
            raise ValueError(f"Unknown {self.transportType} options: {', '.join(sorted(unknown))}")


    def _log(self, message: str, level: str = 'INFO', **fields):
        fields.setdefault('transport', self.transportType)
        fields.setdefault('endpoint', self._endpoint)
        fields.setdefault('instanceId', self._instanceId)
        getattr(self._logger, level.lower(), self._logger.info)(message, **fields)


    async def _unsubscribeHandle(self, handle: SubscriptionHandle):
        if handle.subject in self._subscriptions:
            del self._subscriptions[handle.subject]


    # ===== Context Manager Support =====
    async def __aenter__(self):
        return self


    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
