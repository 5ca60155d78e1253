"""
skyplace - collaborative pixel canvas driven by replies to one root post.
"""

__version__ = "1.0.0"
