"""
skyplace Backfill Reconciler

One-shot historical fetch of the root post's reply thread at startup.
Every reply is parsed and the resulting commands are seeded into the log
through the Ingest actor.

Architecture Invariants:
- Runs once per process
- All-or-nothing: the whole thread is fetched and walked before the first
  submit, so a failure never leaves a partially seeded log
- Root node must be a threadViewPost carrying a 'replies' array; anything
  else is a BackfillError, never "zero replies"
- Nested replies are walked at every depth; notFound/blocked nodes and
  malformed replies are skipped individually
- Commands carry the reply's declared createdAt, not fetch time

Backfill Flow:
  1. GET {appViewUrl}/xrpc/app.bsky.feed.getPostThread?uri=<root>&depth=N
  2. Validate shape (collectCommands)
  3. Retry transient failures (network, 5xx) up to backfill.retries times
  4. Submit every command with source='backfill', then flush
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
import orjson

from .commands import CommandError, PixelCommand, parseCommand
from .config import PlaceConfig
from .ingest import Ingest
from sdk.logging import getLogger


log = getLogger()

GET_POST_THREAD = 'app.bsky.feed.getPostThread'
THREAD_VIEW_POST = 'app.bsky.feed.defs#threadViewPost'


class BackfillError(Exception):
    """Thread fetch or shape failure"""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


def collectCommands(response: Dict[str, Any], width: int, height: int) -> List[PixelCommand]:
    """
    Walk a getPostThread response and parse every reply.

    Args:
        response: Decoded getPostThread output ({'thread': {...}})
        width: Canvas width
        height: Canvas height

    Returns:
        Commands in thread (depth-first) order

    Raises:
        BackfillError: If the response does not have the expected shape
    """
    if not isinstance(response, dict) or not isinstance(response.get('thread'), dict):
        raise BackfillError("Malformed thread response")

    thread = response['thread']
    if thread.get('$type') != THREAD_VIEW_POST:
        raise BackfillError(f"Invalid thread: {thread.get('$type')}")

    replies = thread.get('replies')
    if replies is None:
        raise BackfillError("No replies found")
    if not isinstance(replies, list):
        raise BackfillError("Malformed replies: expected a list")

    log.info(f"[Backfill] Found {len(replies)} direct replies")

    commands: List[PixelCommand] = []
    skipped = 0

    # Iterative depth-first walk, children visited in API order
    stack = list(reversed(replies))
    while stack:
        node = stack.pop()
        if not isinstance(node, dict) or node.get('$type') != THREAD_VIEW_POST:
            skipped += 1
            continue

        command = _commandFromNode(node, width, height)
        if command is not None:
            commands.append(command)

        children = node.get('replies')
        if isinstance(children, list):
            stack.extend(reversed(children))

    log.info(f"[Backfill] Parsed {len(commands)} commands", skippedNodes=skipped)
    return commands


def _commandFromNode(node: Dict[str, Any], width: int, height: int) -> Optional[PixelCommand]:
    try:
        post = node['post']
        actor = post['author']['did']
        record = post['record']
        text = record['text']
        createdAt = record['createdAt']
    except (KeyError, TypeError) as e:
        log.warning(f"[Backfill] Malformed reply skipped: missing {e}")
        return None

    placement = parseCommand(actor, text, width, height)
    if placement is None:
        return None

    try:
        return placement.at(createdAt)
    except CommandError as e:
        log.warning(f"[Backfill] Reply dropped: {e}", actor=actor, uri=post.get('uri'))
        return None


class BackfillReconciler:
    """
    Fetches the existing thread once and seeds the command log.

    state: 'pending' → 'complete' | 'failed'
    """

    def __init__(self, ingest: Ingest, config: PlaceConfig, session: Optional[aiohttp.ClientSession] = None):
        """
        Args:
            ingest: Ingest actor to submit seeded commands to (must be started)
            config: Process configuration (root post, canvas, backfill policy)
            session: Shared aiohttp session (a private one is created per run if None)
        """
        self.ingest = ingest
        self.config = config
        self.session = session
        self.log = getLogger()

        self.state = 'pending'
        self.attempts = 0
        self.seeded = 0
        self.lastError: Optional[str] = None

    async def run(self) -> int:
        """
        Fetch, walk and seed.

        Returns:
            Number of commands submitted (before dedupe)

        Raises:
            BackfillError: When the thread cannot be fetched or has the wrong
                shape once every retry is spent
        """
        if self.state != 'pending':
            raise BackfillError(f"Backfill already ran ({self.state})")

        policy = self.config.backfill
        canvas = self.config.canvas
        maxAttempts = policy.retries + 1

        commands: Optional[List[PixelCommand]] = None
        while commands is None:
            self.attempts += 1
            try:
                response = await self.fetchThread()
                commands = collectCommands(response, canvas.width, canvas.height)
            except BackfillError as e:
                self.lastError = str(e)
                if not e.retryable or self.attempts >= maxAttempts:
                    self.state = 'failed'
                    self.log.error(f"[Backfill] Failed after {self.attempts} attempt(s): {e}",
                                   rootPostUri=self.config.rootPostUri)
                    raise
                self.log.warning(f"[Backfill] Attempt {self.attempts}/{maxAttempts} failed: {e}, "
                                 f"retrying in {policy.retryDelaySeconds}s")
                await asyncio.sleep(policy.retryDelaySeconds)

        for command in commands:
            self.ingest.submit(command, source='backfill')
        await self.ingest.flush()

        self.seeded = len(commands)
        self.state = 'complete'
        self.log.info("[Backfill] Complete", seeded=self.seeded,
                      accepted=self.ingest.counts['backfill']['accepted'])
        return self.seeded

    async def fetchThread(self) -> Dict[str, Any]:
        """
        GET app.bsky.feed.getPostThread for the root post.

        Raises:
            BackfillError: retryable for network errors, timeouts and 5xx;
                permanent for other HTTP errors and undecodable bodies
        """
        url = f"{self.config.appViewUrl.rstrip('/')}/xrpc/{GET_POST_THREAD}"
        params = {
            'uri': self.config.rootPostUri,
            'depth': str(self.config.backfill.depth),
            'parentHeight': '0',
        }
        timeout = aiohttp.ClientTimeout(total=self.config.backfill.timeoutSeconds)

        session = self.session or aiohttp.ClientSession()
        try:
            self.log.info("[Backfill] Fetching thread", uri=self.config.rootPostUri)
            async with session.get(url, params=params, timeout=timeout) as resp:
                body = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackfillError(f"Thread fetch failed: {str(e) or type(e).__name__}", retryable=True)
        finally:
            if session is not self.session:
                await session.close()

        if status != 200:
            raise BackfillError(f"Thread fetch failed: HTTP {status} {_xrpcError(body)}",
                                retryable=status >= 500)

        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise BackfillError(f"Malformed thread response: {e}")


def _xrpcError(body: bytes) -> str:
    """Render an XRPC error body ({'error': ..., 'message': ...}) for logs."""
    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError:
        return ''
    if not isinstance(data, dict):
        return ''
    return ': '.join(str(data[k]) for k in ('error', 'message') if data.get(k))
