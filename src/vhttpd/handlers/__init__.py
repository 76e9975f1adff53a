"""
Request handlers.

A handler turns a parsed Request into a Response. This server has exactly
one: VirtualHostResolver, which serves static files out of per-host
document roots.
"""

from .vhost import INDEX_FILE, ResolvedFile, VirtualHostResolver, clean_path

__all__ = [
    "INDEX_FILE",
    "ResolvedFile",
    "VirtualHostResolver",
    "clean_path",
]
