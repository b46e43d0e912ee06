"""Live collection mirrors and the shared snapshot store they publish into."""

from teamsync.sync.mirror import CollectionMirror, MirrorManager, SettingsMirror
from teamsync.sync.resolver import IdentityResolver
from teamsync.sync.snapshots import CollectionSnapshot, SnapshotStore, SnapshotView

__all__ = [
    "CollectionMirror",
    "SettingsMirror",
    "MirrorManager",
    "IdentityResolver",
    "CollectionSnapshot",
    "SnapshotStore",
    "SnapshotView",
]
