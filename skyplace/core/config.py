"""
skyplace Configuration

Process-wide settings, loaded once from a JSON file at startup and frozen.
Canvas dimensions and the tracked root post never change at runtime.

Config file layout (all keys optional except rootPostUri):
    {
        "rootPostUri": "at://did:plc:.../app.bsky.feed.post/...",
        "appViewUrl": "https://public.api.bsky.app",
        "jetstreamUrl": "wss://jetstream2.us-east.bsky.network/subscribe",
        "canvas": {"width": 100, "height": 100, "background": "#FFFFFF", "historyLimit": 100},
        "backfill": {"required": true, "retries": 3, "retryDelaySeconds": 2.0,
                     "timeoutSeconds": 30.0, "depth": 1000},
        "firehose": {"reconnectTimeWait": 2.0, "maxReconnectTimeWait": 60.0,
                     "cursorRewindSeconds": 5.0},
        "server": {"host": "0.0.0.0", "port": 8787},
        "logging": {"level": "INFO", "logDir": null, "utc": true}
    }
"""

import orjson
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, Optional

from .commands import CommandError, normalizeColour


class ConfigError(Exception):
    """Invalid or unreadable configuration"""
    pass


@dataclass(frozen=True)
class CanvasConfig:
    width: int = 100
    height: int = 100
    background: str = '#FFFFFF'
    historyLimit: int = 100


@dataclass(frozen=True)
class BackfillConfig:
    required: bool = True
    retries: int = 3
    retryDelaySeconds: float = 2.0
    timeoutSeconds: float = 30.0
    depth: int = 1000


@dataclass(frozen=True)
class FirehoseConfig:
    reconnectTimeWait: float = 2.0
    maxReconnectTimeWait: float = 60.0
    cursorRewindSeconds: float = 5.0


@dataclass(frozen=True)
class ServerConfig:
    host: str = '0.0.0.0'
    port: int = 8787


@dataclass(frozen=True)
class LoggingConfig:
    level: str = 'INFO'
    logDir: Optional[str] = None
    utc: bool = True


@dataclass(frozen=True)
class PlaceConfig:
    """Validated, immutable process configuration"""
    rootPostUri: str
    appViewUrl: str = 'https://public.api.bsky.app'
    jetstreamUrl: str = 'wss://jetstream2.us-east.bsky.network/subscribe'
    canvas: CanvasConfig = field(default_factory=CanvasConfig)
    backfill: BackfillConfig = field(default_factory=BackfillConfig)
    firehose: FirehoseConfig = field(default_factory=FirehoseConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def toDict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def fromDict(cls, data: Dict[str, Any]) -> 'PlaceConfig':
        """
        Build and validate from a parsed config document.

        Raises:
            ConfigError: On unknown keys, wrong types or invalid values
        """
        if not isinstance(data, dict):
            raise ConfigError("Config root must be a JSON object")

        sections = {
            'canvas': CanvasConfig,
            'backfill': BackfillConfig,
            'firehose': FirehoseConfig,
            'server': ServerConfig,
            'logging': LoggingConfig,
        }
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in sections:
                kwargs[key] = _buildSection(key, sections[key], value)
            elif key in ('rootPostUri', 'appViewUrl', 'jetstreamUrl'):
                kwargs[key] = value
            else:
                raise ConfigError(f"Unknown config key: {key}")

        if 'rootPostUri' not in kwargs:
            raise ConfigError("Missing rootPostUri")

        config = cls(**kwargs)
        config.validate()
        return replace(config, canvas=replace(config.canvas, background=normalizeColour(config.canvas.background)))

    def validate(self):
        """Raises ConfigError on the first invalid value."""
        if not isinstance(self.rootPostUri, str) or not self.rootPostUri.startswith('at://'):
            raise ConfigError(f"rootPostUri must be an at:// URI, got {self.rootPostUri!r}")
        if not str(self.appViewUrl).startswith(('http://', 'https://')):
            raise ConfigError(f"appViewUrl must be http(s), got {self.appViewUrl!r}")
        if not str(self.jetstreamUrl).startswith(('ws://', 'wss://')):
            raise ConfigError(f"jetstreamUrl must be ws(s), got {self.jetstreamUrl!r}")

        for name in ('width', 'height'):
            value = getattr(self.canvas, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"canvas.{name} must be a positive integer, got {value!r}")
        if not isinstance(self.canvas.historyLimit, int) or self.canvas.historyLimit < 0:
            raise ConfigError(f"canvas.historyLimit must be >= 0, got {self.canvas.historyLimit!r}")
        try:
            normalizeColour(self.canvas.background)
        except CommandError as e:
            raise ConfigError(f"canvas.background: {e}")

        if self.backfill.retries < 0:
            raise ConfigError("backfill.retries must be >= 0")
        if self.backfill.depth < 1:
            raise ConfigError("backfill.depth must be >= 1")
        if self.firehose.reconnectTimeWait <= 0 or self.firehose.maxReconnectTimeWait < self.firehose.reconnectTimeWait:
            raise ConfigError("firehose reconnect delays must satisfy 0 < reconnectTimeWait <= maxReconnectTimeWait")
        if not (0 < self.server.port < 65536):
            raise ConfigError(f"server.port out of range: {self.server.port}")


def _buildSection(key: str, sectionClass, value: Any):
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{key}' must be an object")
    unknown = set(value) - set(sectionClass.__dataclass_fields__)
    if unknown:
        raise ConfigError(f"Unknown keys in '{key}': {', '.join(sorted(unknown))}")
    return sectionClass(**value)


def loadConfig(configPath: str) -> PlaceConfig:
    """Load and validate configuration from a JSON file"""
    try:
        with open(configPath, 'rb') as f:
            data = orjson.loads(f.read())
    except OSError as e:
        raise ConfigError(f"Cannot read config {configPath}: {e}")
    except orjson.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {configPath}: {e}")

    return PlaceConfig.fromDict(data)
