"""Scoped view handles for job payloads, backed by temporary files.

A handle is an opaque token that dereferences to a file on disk holding a
copy of some payload (an original upload, an encoded result). Handles are
grouped under a scope, normally a job id, and are released together.

Files live under ``<base_dir>/<session>/<scope>/`` where ``session`` is
unique to this process, so handles from a previous run are never valid.
"""

import logging
import os
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Set

logger = logging.getLogger(__name__)

# The single extra scope used by the inspection (comparison) view
INSPECTION_SCOPE = "__inspection__"


@dataclass(frozen=True)
class ViewFile:
    path: str
    media_type: str


class ResourceManager:
    """Owns every view handle. Callers only ever see tokens."""

    def __init__(self, base_dir: Optional[str] = None):
        if base_dir:
            self._base_dir = base_dir
        else:
            self._base_dir = os.path.join(tempfile.gettempdir(), "imgcompress_views")
        self._session = uuid.uuid4().hex
        self._session_dir = os.path.join(self._base_dir, self._session)
        os.makedirs(self._session_dir, exist_ok=True)
        self._allocations: Dict[str, Set[str]] = {}
        self._views: Dict[str, ViewFile] = {}

    @property
    def session_dir(self) -> str:
        return self._session_dir

    def allocate(self, scope: str, payload: bytes, media_type: str = "application/octet-stream") -> str:
        """Create a new handle for ``payload`` under ``scope`` and return its token."""
        token = uuid.uuid4().hex
        scope_dir = os.path.join(self._session_dir, _safe_component(scope))
        os.makedirs(scope_dir, exist_ok=True)
        path = os.path.join(scope_dir, token)
        with open(path, "wb") as f:
            f.write(payload)
        self._allocations.setdefault(scope, set()).add(token)
        self._views[token] = ViewFile(path=path, media_type=media_type)
        return token

    def resolve(self, token: str) -> Optional[ViewFile]:
        return self._views.get(token)

    def handles(self, scope: str) -> FrozenSet[str]:
        return frozenset(self._allocations.get(scope, ()))

    def scopes(self) -> FrozenSet[str]:
        return frozenset(self._allocations)

    def release(self, scope: str) -> None:
        """Release every handle under ``scope``. Unknown scopes are a no-op."""
        tokens = self._allocations.pop(scope, None)
        if tokens is None:
            return
        for token in tokens:
            view = self._views.pop(token, None)
            if view is None:
                continue
            try:
                os.remove(view.path)
            except FileNotFoundError:
                pass
        try:
            os.rmdir(os.path.join(self._session_dir, _safe_component(scope)))
        except OSError:
            # Not empty (another scope mapped to the same dir) or already gone
            pass

    def release_all(self) -> None:
        for scope in list(self._allocations):
            self.release(scope)
        shutil.rmtree(self._session_dir, ignore_errors=True)

    def cleanup_stale(self) -> int:
        """Remove session directories left by earlier processes. Returns count removed."""
        removed = 0
        if not os.path.exists(self._base_dir):
            return 0
        for entry in os.listdir(self._base_dir):
            if entry == self._session:
                continue
            stale = os.path.join(self._base_dir, entry)
            if not os.path.isdir(stale):
                continue
            shutil.rmtree(stale, ignore_errors=True)
            removed += 1
        if removed:
            logger.info("Removed %d stale view session(s)", removed)
        return removed


def _safe_component(scope: str) -> str:
    """Scope ids are uuids in practice; keep arbitrary ones inside the session dir."""
    cleaned = "".join(c if c.isalnum() or c in "-_" else "_" for c in scope)
    return cleaned or "_"
