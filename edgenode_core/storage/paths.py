from __future__ import annotations

from pathlib import Path
from typing import Iterable
from urllib.parse import urlparse


def _strip_slashes(value: str) -> str:
    return value.strip("/")


def _join_parts(parts: Iterable[str]) -> str:
    return "/".join(_strip_slashes(part) for part in parts if part)


def join_uri(base_uri: str, *parts: str) -> str:
    parsed = urlparse(base_uri)
    if parsed.scheme == "file":
        safe_parts = [_strip_slashes(part) for part in parts if part]
        return str(Path(parsed.path).joinpath(*safe_parts))
    if parsed.scheme and parsed.netloc:
        base = base_uri.rstrip("/")
        return f"{base}/{_join_parts(parts)}"
    safe_parts = [_strip_slashes(part) for part in parts if part]
    return str(Path(base_uri).joinpath(*safe_parts))


def parent_path(path: str) -> str:
    return "/".join(path.rstrip("/").split("/")[:-1])


def artifact_uri(assets_dir: str, app_id: str, commit: str) -> str:
    return join_uri(assets_dir, app_id, commit, "binary.tar")
