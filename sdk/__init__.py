"""sdk - Software Development Kit for skyplace

Contains reusable modules for:
    - transport: Subscription transports (WebSocket)
    - logging: Centralized structured logging
"""

__version__ = "1.0.0"
__versionInfo__ = (1, 0, 0)
__changelog__ = {
    "1.0.0": "WebSocket transport with resume query parameters; structured logging"
}
