"""
skyplace main entry point.

Runs ingestion and the read boundary in one asyncio process.

Architecture:
- Ingest actor: sole writer of the in-memory command log
- LiveSubscriber: Jetstream firehose → ingest (started first, so no reply
  posted during startup falls between backfill and live)
- BackfillReconciler: one-shot thread fetch → ingest
- PlaceServer: /data, /view, /health

Startup aborts with exit code 1 when the backfill fails and
backfill.required is set. SIGINT/SIGTERM shut everything down gracefully.

Usage:
    python -m skyplace.main [--config path/to/config.json]
"""

import asyncio
import argparse
import signal
import sys
from pathlib import Path

from skyplace.core.backfill import BackfillError, BackfillReconciler
from skyplace.core.commandLog import CommandLog
from skyplace.core.config import ConfigError, PlaceConfig, loadConfig
from skyplace.core.firehose import LiveSubscriber
from skyplace.core.ingest import Ingest
from skyplace.server.server import PlaceServer
from sdk.logging import getLogger, configureLogging
from sdk.transport import createTransport


async def runPlace(config: PlaceConfig, stopEvent: asyncio.Event = None) -> int:
    """
    Run ingestion + server until stopEvent is set.

    Returns:
        Process exit code (0 = clean shutdown, 1 = fatal backfill failure)
    """
    log = getLogger()
    stopEvent = stopEvent or asyncio.Event()

    commandLog = CommandLog()
    ingest = Ingest(commandLog)
    subscriber = LiveSubscriber(ingest, createTransport(config.jetstreamUrl), config)
    backfill = BackfillReconciler(ingest, config)

    def status() -> dict:
        return {
            'backfill': {'state': backfill.state, 'attempts': backfill.attempts,
                         'seeded': backfill.seeded, 'lastError': backfill.lastError},
            'firehose': subscriber.getStatus(),
            'ingest': ingest.getStats(),
        }

    server = PlaceServer(config, commandLog, statusCallback=status)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopEvent.set)
        except (NotImplementedError, RuntimeError):
            pass  # Not available on this platform/thread; KeyboardInterrupt still applies

    try:
        await ingest.start()
        await subscriber.start()

        try:
            await backfill.run()
        except BackfillError as e:
            if config.backfill.required:
                log.error(f"[Main] Backfill failed, aborting startup: {e}")
                return 1
            log.error(f"[Main] Backfill failed, continuing with live replies only: {e}")

        await server.start()
        log.info("[Main] skyplace running (Ctrl+C to stop)", logSize=len(commandLog))

        await stopEvent.wait()
        log.info("[Main] Shutdown signal received")
        return 0

    finally:
        await server.stop()
        await subscriber.stop()
        await ingest.stop()
        log.info("[Main] skyplace stopped", logSize=len(commandLog))


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='skyplace - collaborative pixel canvas from post replies')
    parser.add_argument('--config', default='skyplace/config.json', help='Path to config file')
    args = parser.parse_args()

    configPath = Path(args.config)
    if not configPath.exists():
        configureLogging()
        getLogger().error(f"Config file not found: {args.config}")
        sys.exit(1)

    try:
        config = loadConfig(str(configPath))
    except ConfigError as e:
        configureLogging()
        getLogger().error(f"Invalid config: {e}")
        sys.exit(1)

    configureLogging(logDir=config.logging.logDir, level=config.logging.level, utc=config.logging.utc)
    log = getLogger()
    log.info("=" * 60)
    log.info("skyplace")
    log.info("=" * 60)
    log.info(f"Config: {args.config}", rootPostUri=config.rootPostUri,
             width=config.canvas.width, height=config.canvas.height)

    try:
        exitCode = asyncio.run(runPlace(config))
    except KeyboardInterrupt:
        log.info("[Main] Interrupted")
        exitCode = 0

    sys.exit(exitCode)


if __name__ == '__main__':
    main()
