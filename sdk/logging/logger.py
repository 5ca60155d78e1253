"""
Hierarchical structured logger with automatic name detection.

Features:
- Logger name detected from the caller's module and class (computed once, cached)
- Console output always, rotating file output when a log directory is configured
- Structured fields passed as keyword arguments: log.info("Message", key=value)

Usage:
    from sdk.logging import getLogger

    class Ingest:
        def __init__(self):
            self.log = getLogger()  # Auto: 'skyplace.core.ingest.Ingest'

        def submit(self, command):
            self.log.debug("[Ingest] Queued", commandId=command.commandId)

    # Module-level
    log = getLogger()  # Auto: 'skyplace.main'
"""

import inspect
import logging
import logging.handlers
import socket
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone as tz


_hostname = socket.gethostname()
_configured = False
_fileHandlers = {}  # logPath -> handler, shared across loggers of one app
_config = {
    'logDir': None,
    'maxBytes': 10_000_000,
    'backupCount': 5,
    'console': True,
    'level': logging.INFO,
    'utc': True
}

# LogRecord attributes that are never rendered as structured fields
_RESERVED = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName',
    'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'hostname', 'asctime', 'taskName'
}


def configureLogging(logDir: Optional[str] = None, maxBytes: int = 10_000_000,
                     backupCount: int = 5, console: bool = True,
                     level: str = 'INFO', utc: bool = True):
    """
    Configure global logging settings (call once at process startup).

    Loggers already handed out by getLogger() are re-attached, so module-level
    loggers created at import time pick up the new settings too.

    Args:
        logDir: Directory for rotating log files (None = console only)
        maxBytes: Maximum size per log file before rotation
        backupCount: Number of rotated files to keep per app
        console: Also log to console
        level: Minimum log level name ('DEBUG', 'INFO', ...)
        utc: Render timestamps in UTC
    """
    global _configured

    levelNo = logging.getLevelName(level.upper())
    if not isinstance(levelNo, int):
        raise ValueError(f"Unknown log level: {level}")

    _config.update({'logDir': logDir, 'maxBytes': maxBytes, 'backupCount': backupCount,
                    'console': console, 'level': levelNo, 'utc': utc})

    if logDir is not None:
        Path(logDir).mkdir(parents=True, exist_ok=True)

    for handler in _fileHandlers.values():
        handler.close()
    _fileHandlers.clear()

    for logger in list(logging.Logger.manager.loggerDict.values()):
        if getattr(logger, '_configuredBySdk', False):
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
            _attachHandlers(logger)

    _configured = True


def _autoDetectName() -> str:
    """Walk the call stack to the first frame outside sdk.logging. Returns e.g. 'skyplace.core.firehose.LiveSubscriber'"""
    frame = inspect.currentframe()
    try:
        current = frame
        while current is not None:
            current = current.f_back
            if current is None:
                break

            module = inspect.getmodule(current)
            if module is None:
                continue

            moduleName = module.__name__
            if moduleName.startswith('sdk.logging') or moduleName.startswith('importlib'):
                continue

            parts = moduleName.split('.')
            if parts and parts[0] == 'sdk':
                parts = parts[1:]
            hierarchy = '.'.join(parts) if parts else 'unknown'

            if 'self' in current.f_locals:
                hierarchy = f"{hierarchy}.{current.f_locals['self'].__class__.__name__}"
            elif 'cls' in current.f_locals and isinstance(current.f_locals['cls'], type):
                hierarchy = f"{hierarchy}.{current.f_locals['cls'].__name__}"

            return hierarchy

        return 'unknown'
    finally:
        del frame


class StructuredFormatter(logging.Formatter):
    """Format: timestamp - hostname - logger.name - level - message [field1=value1, field2=value2]"""

    def __init__(self, fmt=None, datefmt=None, utc=True):
        super().__init__(fmt, datefmt)
        self.utc = utc

    def formatTime(self, record, datefmt=None):
        if self.utc:
            ct = datetime.fromtimestamp(record.created, tz=tz.utc)
        else:
            ct = datetime.fromtimestamp(record.created)

        if datefmt:
            return ct.strftime(datefmt)
        return f"{ct.strftime('%Y-%m-%d %H:%M:%S')},{int(record.msecs):03d}"

    def format(self, record):
        record.hostname = _hostname

        fields = [f"{key}={value}" for key, value in record.__dict__.items()
                  if key not in _RESERVED and not key.startswith('_')]

        # Render fields on a copy of msg so other handlers see the original
        originalMsg = record.msg
        if fields:
            record.msg = f"{originalMsg} [{', '.join(fields)}]"
        try:
            return super().format(record)
        finally:
            record.msg = originalMsg


def _fileHandlerFor(logPath: str) -> logging.Handler:
    if logPath not in _fileHandlers:
        handler = logging.handlers.RotatingFileHandler(
            logPath,
            maxBytes=_config['maxBytes'],
            backupCount=_config['backupCount'],
            encoding='utf-8'
        )
        handler.setLevel(_config['level'])
        handler.setFormatter(StructuredFormatter(
            '%(asctime)s - %(hostname)s - %(name)s - %(levelname)s - %(message)s',
            utc=_config['utc']
        ))
        _fileHandlers[logPath] = handler
    return _fileHandlers[logPath]


def _attachHandlers(logger: logging.Logger):
    """Attach console/file handlers for the current _config."""
    logger.setLevel(_config['level'])

    if _config['logDir'] is not None:
        name = logger.name
        logFilename = f"{name}.log" if getattr(logger, '_separateFile', False) else f"{name.split('.')[0]}.log"
        logger.addHandler(_fileHandlerFor(str(Path(_config['logDir']) / logFilename)))

    if _config['console']:
        consoleHandler = logging.StreamHandler()
        consoleHandler.setLevel(_config['level'])
        consoleHandler.setFormatter(StructuredFormatter(
            '%(asctime)s %(name)s - %(levelname)s - %(message)s',
            utc=_config['utc']
        ))
        logger.addHandler(consoleHandler)

    logger._configuredBySdk = True


def getLogger(name: Optional[str] = None, separateFile: bool = False) -> logging.Logger:
    """
    Get or create a logger with automatic hierarchy detection.

    Stack inspection happens once per getLogger() call; keep the returned
    logger on the instance or module instead of calling getLogger() per message.

    Args:
        name: Logger name (auto-detected from call stack if None)
        separateFile: Write to '<name>.log' instead of the app-wide '<app>.log'

    Returns:
        logging.Logger whose level methods accept structured fields as kwargs
    """
    if not _configured:
        configureLogging()

    if name is None:
        name = _autoDetectName()

    logger = logging.getLogger(name)
    logger.propagate = False

    if not logger.handlers and not getattr(logger, '_configuredBySdk', False):
        logger._separateFile = separateFile
        _attachHandlers(logger)

    return _wrapLogger(logger)


def _structured(method):
    """Adapt a Logger level method so log.info("msg", key=value) becomes extra={'key': value}."""
    def wrapped(msg, *args, **kwargs):
        excInfo = kwargs.pop('exc_info', False)
        if kwargs:
            method(msg, *args, extra=kwargs, exc_info=excInfo)
        else:
            method(msg, *args, exc_info=excInfo)
    wrapped.__doc__ = f"{method.__name__} with structured fields"
    return wrapped


def _wrapLogger(logger: logging.Logger) -> logging.Logger:
    if getattr(logger, '_isWrapped', False):
        return logger

    for levelName in ('debug', 'info', 'warning', 'error', 'critical'):
        setattr(logger, levelName, _structured(getattr(logger, levelName)))
    logger._isWrapped = True

    return logger
