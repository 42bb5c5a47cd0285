"""
Distribution engine boundary.

Only the exceptions are imported here; torrent.client pulls in libtorrent and
is imported where the session is actually built.
"""

from torrent.exceptions import EngineRejection, InvalidDescriptor, translate_engine_exception

__all__ = ['EngineRejection', 'InvalidDescriptor', 'translate_engine_exception']
