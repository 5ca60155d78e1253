"""
skyplace Live Event Subscriber

Subscribes to the Jetstream firehose (network-wide post commits) through
sdk.transport and forwards replies to the root post into the Ingest actor.

Architecture Contract:
- Subscription subject is the post collection NSID; Jetstream filters
  server-side on wantedCollections
- Only commit/create events on app.bsky.feed.post whose reply root is the
  tracked root post are parsed; everything else is dropped silently
- Commands carry the record's declared createdAt, not delivery time
- At-least-once delivery is expected; repeats collapse in the command log
- No event ends the subscription: decode failures, bad records and
  rejected commands are dropped one at a time
- time_us of the newest event is fed back to the transport as the resume
  cursor (minus a rewind margin) so reconnects replay the gap
"""

from typing import Any, Dict, Optional

import orjson

from .commands import CommandError, PixelCommand, parseCommand
from .config import PlaceConfig
from .ingest import Ingest, IngestError
from sdk.logging import getLogger
from sdk.transport import TransportBase, SubscriptionHandle


POST_COLLECTION = 'app.bsky.feed.post'


class FirehoseError(Exception):
    """Subscriber lifecycle error"""
    pass


def matchesRootPost(event: Dict[str, Any], rootPostUri: str) -> bool:
    """
    True for a post-creation commit replying (directly or nested) to rootPostUri.

    Jetstream commit shape:
        {"did": ..., "time_us": ..., "kind": "commit",
         "commit": {"operation": "create", "collection": "app.bsky.feed.post",
                    "record": {"text": ..., "createdAt": ...,
                               "reply": {"root": {"uri": ...}, "parent": {"uri": ...}}}}}
    """
    if event.get('kind') != 'commit':
        return False

    commit = event.get('commit')
    if not isinstance(commit, dict):
        return False
    if commit.get('operation') != 'create' or commit.get('collection') != POST_COLLECTION:
        return False

    record = commit.get('record')
    if not isinstance(record, dict):
        return False
    reply = record.get('reply')
    if not isinstance(reply, dict):
        return False
    root = reply.get('root')
    if not isinstance(root, dict):
        return False

    return root.get('uri') == rootPostUri


class LiveSubscriber:
    """
    Firehose subscription manager.

    Owns the subscription on an sdk.transport instance and forwards
    matching replies to ingest.
    """

    def __init__(self, ingest: Ingest, transport: TransportBase, config: PlaceConfig):
        """
        Args:
            ingest: Ingest actor to submit live commands to
            transport: sdk.transport instance (connected by start() if not already)
            config: Process configuration (root post, canvas, firehose policy)
        """
        self.ingest = ingest
        self.transport = transport
        self.config = config
        self.log = getLogger()

        self.subscription: Optional[SubscriptionHandle] = None
        self.lastTimeUs: Optional[int] = None
        self.counts = {'received': 0, 'matched': 0, 'submitted': 0, 'dropped': 0}

    @property
    def running(self) -> bool:
        return self.subscription is not None and self.subscription.active

    async def start(self):
        """Connect (if needed) and subscribe to post commits."""
        if self.running:
            raise FirehoseError("LiveSubscriber already running")

        if not self.transport.isConnected:
            firehose = self.config.firehose
            await self.transport.connect(
                self.config.jetstreamUrl,
                reconnectTimeWait=firehose.reconnectTimeWait,
                maxReconnectTimeWait=firehose.maxReconnectTimeWait
            )

        self.log.info(f"[Firehose] Subscribing to: {POST_COLLECTION}", rootPostUri=self.config.rootPostUri)
        self.subscription = await self.transport.subscribe(POST_COLLECTION, self._handleMessage)
        self.log.info("[Firehose] Subscription active")

    async def stop(self):
        """Stop receiving and release the connection. Already-submitted commands stay queued for ingest."""
        if self.subscription is not None:
            await self.subscription.unsubscribe()
            self.subscription = None
        await self.transport.close()
        self.log.info("[Firehose] Stopped", **self.counts)

    def getStatus(self) -> Dict[str, Any]:
        return {
            'running': self.running,
            'transport': self.transport.status(),
            'lastTimeUs': self.lastTimeUs,
            'counts': dict(self.counts),
        }

    async def _handleMessage(self, subject: str, payload: bytes):
        """
        Handle one firehose frame.

        Args:
            subject: Subscription subject (collection NSID)
            payload: Raw JSON frame
        """
        self.counts['received'] += 1
        try:
            event = orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            self.counts['dropped'] += 1
            self.log.warning(f"[Firehose] Undecodable frame on '{subject}': {e}")
            return

        if not isinstance(event, dict):
            self.counts['dropped'] += 1
            return

        self._trackCursor(event)

        if not matchesRootPost(event, self.config.rootPostUri):
            return

        self.counts['matched'] += 1
        try:
            self.handleEvent(event)
        except IngestError as e:
            self.counts['dropped'] += 1
            self.log.warning(f"[Firehose] Event not ingested: {e}")

    def handleEvent(self, event: Dict[str, Any]) -> Optional[PixelCommand]:
        """
        Parse a matching reply event and submit the command.

        Returns:
            The submitted command, or None when the reply carried no valid command
        """
        actor = event.get('did')
        record = event['commit']['record']
        text = record.get('text')
        self.log.debug("[Firehose] New reply", actor=actor, text=text)

        placement = parseCommand(actor, text, self.config.canvas.width, self.config.canvas.height)
        if placement is None:
            return None

        try:
            command = placement.at(record.get('createdAt'))
        except CommandError as e:
            self.counts['dropped'] += 1
            self.log.warning(f"[Firehose] Reply dropped: {e}", actor=actor)
            return None

        self.ingest.submit(command, source='live')
        self.counts['submitted'] += 1
        self.log.info("[Firehose] New game move", actor=command.actor, x=command.x,
                      y=command.y, colour=command.colour, timestamp=command.timestamp)
        return command

    def _trackCursor(self, event: Dict[str, Any]):
        timeUs = event.get('time_us')
        if isinstance(timeUs, bool) or not isinstance(timeUs, int):
            return
        if self.lastTimeUs is not None and timeUs <= self.lastTimeUs:
            return

        self.lastTimeUs = timeUs
        rewindUs = int(self.config.firehose.cursorRewindSeconds * 1_000_000)
        self.transport.setQueryParam('cursor', max(timeUs - rewindUs, 0))
