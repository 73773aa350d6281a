"""
ContainerHub - browse and manage Docker Registry v2 repositories.

The registry client (``containerhub.registry``) models a registry as a lazily
fetched object graph; the store (``containerhub.store``) orchestrates bounded
refreshes across sources and caches the result on disk.
"""

__version__ = "0.1.0"
