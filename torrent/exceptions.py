"""
Exceptions raised at the distribution engine boundary.

libtorrent reports most failures as bare RuntimeError (bad .torrent file,
invalid handle) or OSError/ValueError; translate_engine_exception() maps
those onto the two types the rest of SeedKeeper handles.
"""


class EngineRejection(Exception):
    """The engine refused an operation (bind, submit, stop, parse)."""


class InvalidDescriptor(EngineRejection):
    """File is not a usable descriptor: wrong suffix or rejected by the parser."""


def translate_engine_exception(exc: Exception, context: str = "") -> EngineRejection:
    """
    Wrap a raw engine error in EngineRejection.

    Args:
        exc: Exception raised by libtorrent or the OS
        context: Short description of the operation, prefixed to the message

    Returns:
        EngineRejection (the same instance if exc already is one)
    """
    if isinstance(exc, EngineRejection):
        return exc
    message = f"{context}: {exc}" if context else str(exc)
    return EngineRejection(message)


__all__ = ['EngineRejection', 'InvalidDescriptor', 'translate_engine_exception']
