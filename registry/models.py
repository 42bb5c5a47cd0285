"""Value types shared by the scanner, registry, engine and workers."""
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ContentDescriptor:
    """Parsed torrent descriptor file.

    Attributes:
        identity: Hex info-hash uniquely identifying the content
        name: Display name stored in the descriptor
        files: Paths of the files the descriptor describes
        filename: Descriptor file name it was parsed from (no directory)
        path: Full path the descriptor was parsed from
        source: Engine-native parsed object, handed back to the engine on submit
    """
    identity: str
    name: str
    files: tuple[str, ...] = ()
    filename: str = ""
    path: str = ""
    source: Any = field(default=None, compare=False, repr=False)


@dataclass
class TorrentRecord:
    """Tracking record for one content identity.

    Lives inside the Registry and is only touched under its lock; callers
    receive detached copies.
    """
    identity: str
    descriptor_filename: str
    last_seen: float
    is_registered: bool = False
    is_seeding: bool = False
    pending_removal: bool = False

    def __str__(self) -> str:
        return (
            f"('{self.descriptor_filename}', last_seen={self.last_seen:.0f}, "
            f"registered={self.is_registered}, seeding={self.is_seeding})"
        )


@dataclass(frozen=True)
class AuthorityAnomaly:
    """Authority lists a descriptor that does not exist on disk."""
    filename: str

    def __str__(self) -> str:
        return f"Torrent '{self.filename}' is known to the authority but does not exist on disk"


# Engine event kinds
SEED_STARTED = 'seed_started'
SEED_FAILED = 'seed_failed'
SEED_STOPPED = 'seed_stopped'


@dataclass(frozen=True)
class EngineEvent:
    """Event drained from the distribution engine."""
    kind: str
    identity: str
    name: str = ""
    message: str = ""


@dataclass
class RegistryStats:
    """Point-in-time counts over the registry."""
    total: int = 0
    registered: int = 0
    seeding: int = 0
    pending_removal: int = 0
    tombstoned: int = 0
