"""
Schema Mirror Workspace.

Keeps a local mirror of remotely published API-tool schemas, caches the
results of invoking those tools, and ranks free-text searches over the
mirrored catalog.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
