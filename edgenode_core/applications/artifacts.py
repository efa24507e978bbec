from __future__ import annotations

from dataclasses import dataclass

import fsspec

from edgenode_core.errors import ArtifactNotFound
from edgenode_core.storage.paths import join_uri

ARTIFACT_NAME = "binary.tar"


@dataclass(frozen=True)
class ApplicationArtifact:
    location: str
    commit: str


def resolve_application(assets_dir: str, app_id: str) -> ApplicationArtifact:
    """Return the newest downloaded artifact for an application.

    Artifacts live at ``<assets_dir>/<app_id>/<commit>/binary.tar``; the
    commit directory whose artifact was modified last wins.
    """
    root = join_uri(assets_dir, str(app_id))
    try:
        candidates = _candidates(root)
    except OSError as exc:
        raise ArtifactNotFound(f"Failed listing artifacts under {root}: {exc}") from exc

    if not candidates:
        raise ArtifactNotFound(f"No {ARTIFACT_NAME} found under {root}")
    candidates.sort()
    _, commit, location = candidates[-1]
    return ApplicationArtifact(location=location, commit=commit)


def artifact_exists(location: str) -> bool:
    fs, path = fsspec.core.url_to_fs(location)
    return bool(fs.exists(path)) and not fs.isdir(path)


def _candidates(root: str) -> list[tuple[float, str, str]]:
    fs, path = fsspec.core.url_to_fs(root)
    if not fs.exists(path) or not fs.isdir(path):
        raise ArtifactNotFound(f"No application directory at {root}")

    candidates: list[tuple[float, str, str]] = []
    for entry in fs.ls(path, detail=True):
        if entry.get("type") != "directory":
            continue
        commit_path = str(entry["name"]).rstrip("/")
        commit = commit_path.split("/")[-1]
        artifact_path = f"{commit_path}/{ARTIFACT_NAME}"
        if not fs.exists(artifact_path):
            continue
        candidates.append((_modified(fs, artifact_path), commit, artifact_path))
    return candidates


def _modified(fs: fsspec.AbstractFileSystem, path: str) -> float:
    info = fs.info(path)
    value = info.get("mtime") or info.get("created") or 0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
