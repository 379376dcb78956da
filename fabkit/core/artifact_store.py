"""
Artifact Store

Tracks generated on-disk artifacts (crypto material, genesis block,
channel transactions, ledger data) by logical name. The store is the one
authority operations consult to decide whether their work is already
done.

A directory artifact counts as present only when its completion marker
exists. Generating operations write the marker as their very last step,
so a directory left behind by an interrupted run is treated as absent
and regenerated on the next invocation. With markers disabled, bare
directory presence is the signal and a partially generated directory is
indistinguishable from a complete one.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

MARKER_NAME = ".fabkit-complete"


@dataclass
class Artifact:
    """A named filesystem path produced by some generating operation"""
    name: str
    path: Path
    regenerate: Optional[Callable[[Any], Any]] = None
    is_directory: bool = True
    marked: bool = True

    @property
    def marker_path(self) -> Path:
        if self.is_directory:
            return self.path / MARKER_NAME
        return self.path.with_name(self.path.name + MARKER_NAME)


class ArtifactStore:
    """Registry of artifacts keyed by logical name"""

    def __init__(self, markers: bool = True):
        self.markers = markers
        self.artifacts: Dict[str, Artifact] = {}
        self.logger = logging.getLogger(__name__)

    def register(self, artifact: Artifact) -> Artifact:
        self.artifacts[artifact.name] = artifact
        return artifact

    def add(self, name: str, path: os.PathLike, regenerate: Optional[Callable] = None,
            is_directory: bool = True, marked: bool = True) -> Artifact:
        """Register an artifact from its parts"""
        return self.register(Artifact(name, Path(path), regenerate, is_directory, marked))

    def get(self, name: str) -> Artifact:
        try:
            return self.artifacts[name]
        except KeyError:
            raise KeyError(f"Unknown artifact: {name}") from None

    def names(self) -> List[str]:
        return list(self.artifacts)

    def path_of(self, name: str) -> Path:
        return self.get(name).path

    def exists(self, name: str) -> bool:
        """Whether the artifact is present and, with markers on, complete"""
        artifact = self.get(name)
        if not artifact.path.exists():
            return False
        if self.markers and artifact.marked:
            return artifact.marker_path.is_file()
        return True

    def present(self, name: str) -> bool:
        """Whether anything exists at the artifact path, complete or not"""
        return self.get(name).path.exists()

    def invalidate(self, name: str):
        """Remove the artifact and its marker"""
        artifact = self.get(name)
        if artifact.path.is_dir() and not artifact.path.is_symlink():
            shutil.rmtree(artifact.path)
        elif artifact.path.exists() or artifact.path.is_symlink():
            artifact.path.unlink()
        if not artifact.is_directory and artifact.marker_path.exists():
            artifact.marker_path.unlink()
        self.logger.info(f"Invalidated artifact {name} at {artifact.path}")

    def prepare(self, name: str) -> Path:
        """Start generation: drop any partial content and create the directory"""
        artifact = self.get(name)
        if self.present(name):
            self.invalidate(name)
        target = artifact.path if artifact.is_directory else artifact.path.parent
        target.mkdir(parents=True, exist_ok=True)
        return artifact.path

    def mark_complete(self, name: str):
        """Atomically write the completion marker of an artifact"""
        artifact = self.get(name)
        marker = artifact.marker_path
        marker.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(marker.parent), prefix=".fabkit-")
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(name + "\n")
            os.replace(tmp_path, marker)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def regenerate(self, name: str, context: Any = None) -> Any:
        """Invalidate the artifact and run its regenerate action"""
        artifact = self.get(name)
        if artifact.regenerate is None:
            raise ValueError(f"Artifact {name} has no regenerate action")
        self.invalidate(name)
        return artifact.regenerate(context)
