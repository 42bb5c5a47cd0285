"""
Local descriptor discovery.

Lists the torrent directory and parses every entry that looks like a
descriptor. Anything else in the directory (payload files, partial
downloads, stray files) is skipped; one bad file never aborts a scan.
"""

import os
from typing import TYPE_CHECKING

from registry.models import ContentDescriptor
from shared.log import create_logger
from torrent.exceptions import InvalidDescriptor

if TYPE_CHECKING:
    from torrent.client import TorrentEngine

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Scanner")


class DirectoryScanner:
    """Finds and parses descriptor files in one directory.

    Args:
        directory: Directory to scan
        engine: Engine whose parser validates descriptor content
        suffix: Descriptor file suffix (e.g. ".torrent")
    """

    def __init__(self, directory: str, engine: "TorrentEngine", suffix: str = ".torrent"):
        self.directory = directory
        self.engine = engine
        self.suffix = suffix

    def list_candidates(self) -> list[str]:
        """Return directory entries, unfiltered and sorted."""
        try:
            files = sorted(os.listdir(self.directory))
        except OSError as e:
            log_error(f"Unable to list '{self.directory}': {e}")
            return []
        log_debug(f"Files in {self.directory}: {files}")
        return files

    def parse_descriptor(self, filename: str) -> ContentDescriptor:
        """
        Parse one directory entry as a descriptor.

        Raises:
            InvalidDescriptor: Name shorter than or not ending with the suffix,
                or the engine parser rejected the content
        """
        if len(filename) < len(self.suffix) or not filename.endswith(self.suffix):
            log_trace(f"Skipping '{filename}'")
            raise InvalidDescriptor(f"'{filename}' does not end with '{self.suffix}'")

        log_info(f"Torrent file is found: {filename}")
        descriptor = self.engine.parse_descriptor(os.path.join(self.directory, filename))
        log_trace(
            f"'{filename}': info hash for file: '{descriptor.identity}'; "
            f"name is '{descriptor.name}'; files: {list(descriptor.files)}"
        )
        return descriptor

    def scan(self) -> list[ContentDescriptor]:
        """List and parse all candidates, skipping invalid ones."""
        descriptors = []
        for filename in self.list_candidates():
            try:
                descriptors.append(self.parse_descriptor(filename))
            except InvalidDescriptor as e:
                if filename.endswith(self.suffix):
                    log_warn(str(e))
                continue
        return descriptors


__all__ = ['DirectoryScanner']
