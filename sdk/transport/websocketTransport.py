"""
WebSocket Transport Adapter

API:
    connect(uri, **opts)        # Validate options, mark READY (socket opens on first subscribe)
    subscribe(subject, handler) # Add subject to the connect query, start receiving
    setQueryParam(key, value)   # Extra query parameter applied on the next (re)connect
    close()                     # Stop receiving, release the socket

Options:
    reconnectTimeWait (float, default: 2.0)      first backoff delay after a disconnect
    maxReconnectTimeWait (float, default: 60.0)  backoff ceiling
    heartbeat (float, default: 30.0)             ping interval; None disables
    subjectParam (str, default: 'wantedCollections')  query key carrying subscribed subjects
    session (aiohttp.ClientSession)              shared session (caller keeps ownership)

URI Schemes:
    ws://host:port/path
    wss://host/path

Design:
    - Server-side filtering: subjects travel as repeated query parameters,
      every received frame is handed to every active handler
    - Disconnects never surface to handlers; the receive loop reconnects with
      exponential backoff until close() is called
    - Handler exceptions are logged and swallowed, one bad frame never ends the loop
"""


# Imports
import asyncio, inspect, time
from typing import Callable, Optional, Dict, Any
from urllib.parse import urlparse, urlencode, parse_qsl, urlunparse

import aiohttp
from aiohttp import WSMsgType

# Local imports
from .transportBase import TransportBase, SubscriptionHandle


# Class
class WebSocketTransport(TransportBase):
    """WebSocket client transport with automatic resubscription."""

    _VALID_CONNECT_OPTS = {
        'reconnectTimeWait', 'maxReconnectTimeWait', 'heartbeat', 'subjectParam', 'session'}


    def __init__(self):
        super().__init__()
        self._uri: Optional[str] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._ownsSession = False
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receiveTask: Optional[asyncio.Task] = None
        self._handlers: Dict[str, Callable[[str, bytes], Any]] = {}
        self._queryParams: Dict[str, str] = {}
        self._resubscribe = False

        self._reconnectTimeWait = 2.0
        self._maxReconnectTimeWait = 60.0
        self._heartbeat: Optional[float] = 30.0
        self._subjectParam = 'wantedCollections'

        self._connected = False
        self._reconnectCount = 0
        self._messagesIn = 0


    @property
    def transportType(self) -> str:
        return 'websocket'


    @property
    def reconnectCount(self) -> int:
        return self._reconnectCount


    @property
    def receiving(self) -> bool:
        """True while a socket is open and frames are being read."""
        return self._connected


    async def connect(self, uri: str, **opts) -> None:

        if self._state == 'READY':
            raise RuntimeError('WebSocketTransport already connected')

        self._validateOptions(opts, self._VALID_CONNECT_OPTS)

        parsed = urlparse(uri)
        scheme = parsed.scheme.lower()
        if scheme not in ('ws', 'wss'):
            raise ValueError(f"Unsupported WebSocket scheme '{scheme}'. Supported: ws, wss")

        self._reconnectTimeWait = float(opts.get('reconnectTimeWait', self._reconnectTimeWait))
        self._maxReconnectTimeWait = float(opts.get('maxReconnectTimeWait', self._maxReconnectTimeWait))
        self._heartbeat = opts.get('heartbeat', self._heartbeat)
        self._subjectParam = opts.get('subjectParam', self._subjectParam)

        if opts.get('session') is not None:
            self._session = opts['session']
            self._ownsSession = False
        else:
            self._session = aiohttp.ClientSession()
            self._ownsSession = True

        self._uri = uri
        self._endpoint = f"{scheme}://{parsed.netloc}{parsed.path}"
        self._state = 'READY'
        self._connectedAt = time.time()

        self._log('WebSocketTransport ready', event='connect')


    async def subscribe(self, subject: str, handler: Callable[[str, bytes], Any]) -> SubscriptionHandle:

        if self._state != 'READY':
            raise RuntimeError('WebSocketTransport not connected')

        if not callable(handler):
            raise ValueError(f"Handler must be callable, got {type(handler)}")

        if subject in self._subscriptions:
            raise ValueError(f"Already subscribed: {subject}")

        handle = SubscriptionHandle(subject, self._unsubscribeSubject)
        self._subscriptions[subject] = handle
        self._handlers[subject] = handler
        self._log(f'Subscribed: {subject}', event='subscribe')

        await self._applySubjects()
        return handle


    def setQueryParam(self, key: str, value: Optional[Any]) -> None:
        """Set (or clear with None) a query parameter used from the next connect attempt on."""
        if value is None:
            self._queryParams.pop(key, None)
        else:
            self._queryParams[key] = str(value)


    def buildConnectUri(self) -> str:
        """Base URI + subscribed subjects + extra query parameters."""
        parsed = urlparse(self._uri)
        query = [(k, v) for k, v in parse_qsl(parsed.query) if k != self._subjectParam and k not in self._queryParams]
        query += [(self._subjectParam, subject) for subject in self._subscriptions]
        query += sorted(self._queryParams.items())
        return urlunparse(parsed._replace(query=urlencode(query)))


    async def close(self, timeout: Optional[float] = None) -> None:

        if self._state == 'CLOSED':
            return

        self._state = 'CLOSED'

        for handle in self._subscriptions.values():
            handle._deactivate()
        self._subscriptions.clear()
        self._handlers.clear()

        await self._stopReceiving(timeout)

        if self._ownsSession and self._session is not None:
            await self._session.close()
        self._session = None

        self._log('WebSocketTransport closed', event='close',
                  messagesIn=self._messagesIn, reconnects=self._reconnectCount)


    def status(self) -> Dict[str, Any]:
        result = super().status()
        result.update({'receiving': self._connected, 'reconnects': self._reconnectCount,
                       'messagesIn': self._messagesIn})
        return result


    # ===== Internals =====
    async def _applySubjects(self):
        """Start the receive loop, or bounce the open socket so the server sees the new subject list."""
        if not self._subscriptions:
            await self._stopReceiving()
            return

        if self._receiveTask is None or self._receiveTask.done():
            self._receiveTask = asyncio.create_task(self._receiveLoop())
        elif self._ws is not None and not self._ws.closed:
            self._resubscribe = True
            await self._ws.close()


    async def _stopReceiving(self, timeout: Optional[float] = None):
        task = self._receiveTask
        self._receiveTask = None
        if task is None:
            return

        task.cancel()
        try:
            await asyncio.wait_for(task, timeout=timeout)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass


    async def _unsubscribeSubject(self, handle: SubscriptionHandle):
        await self._unsubscribeHandle(handle)
        self._handlers.pop(handle.subject, None)
        self._log(f'Unsubscribed: {handle.subject}', event='unsubscribe')
        if self._state == 'READY':
            await self._applySubjects()


    async def _receiveLoop(self):
        delay = self._reconnectTimeWait

        while self._state == 'READY' and self._subscriptions:
            url = self.buildConnectUri()
            try:
                async with self._session.ws_connect(url, heartbeat=self._heartbeat) as ws:
                    self._ws = ws
                    self._connected = True
                    self._log('WebSocket connected', event='open', url=url)

                    async for msg in ws:
                        if msg.type == WSMsgType.TEXT:
                            await self._dispatch(msg.data.encode('utf-8'))
                        elif msg.type == WSMsgType.BINARY:
                            await self._dispatch(msg.data)
                        elif msg.type == WSMsgType.ERROR:
                            self._log(f'WebSocket error: {ws.exception()}', level='WARNING')
                            break
                        else:
                            continue
                        # Socket is delivering, so the next outage starts from the short delay again
                        delay = self._reconnectTimeWait

            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                self._log(f'Connection failed: {e}', level='WARNING')
            finally:
                self._ws = None
                self._connected = False

            if self._state != 'READY' or not self._subscriptions:
                break

            if self._resubscribe:
                self._resubscribe = False
                continue

            self._reconnectCount += 1
            self._log(f'Disconnected, reconnecting in {delay:.1f}s', level='WARNING',
                      event='reconnect', attempt=self._reconnectCount)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._maxReconnectTimeWait)


    async def _dispatch(self, payload: bytes):
        self._messagesIn += 1
        for subject, handler in list(self._handlers.items()):
            handle = self._subscriptions.get(subject)
            if handle is None or not handle.active:
                continue
            handle._recordMessage()
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(subject, payload)
                else:
                    handler(subject, payload)
            except Exception as e:
                self._log(f'Handler error: {e}', level='ERROR', subject=subject)
