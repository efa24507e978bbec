from edgenode_core.storage.paths import artifact_uri, join_uri, parent_path

__all__ = [
    "artifact_uri",
    "join_uri",
    "parent_path",
]
