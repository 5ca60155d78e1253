"""
SDK Logging - hierarchical structured logger with automatic name detection.

API:
    from sdk.logging import getLogger

    class LiveSubscriber:
        def __init__(self):
            self.log = getLogger()  # Auto: 'skyplace.core.firehose.LiveSubscriber'

        def start(self):
            self.log.info("[Firehose] Subscribing", collection=self.collection)

    # Global configuration (once at process startup)
    from sdk.logging import configureLogging
    configureLogging(logDir='./logs', level='DEBUG')
"""

from .logger import getLogger, configureLogging

__all__ = [
    'getLogger',
    'configureLogging'
]
