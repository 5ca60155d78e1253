"""
Package init for skyplace.server
"""

from skyplace.server.server import PlaceServer

__all__ = ['PlaceServer']
