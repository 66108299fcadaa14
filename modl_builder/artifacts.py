"""
Artifact identity model and small file I/O helpers.

Identity is (group, name, version, classifier). The build scope and file path ride
along but never take part in equality, so the same library pulled in by two
sub-projects collapses to one entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple

COMPILE_SCOPE = "compile"


@dataclass(frozen=True)
class Artifact:
    """A build artifact. scope is None for a sub-project's own produced artifact."""

    group: str
    name: str
    version: str
    classifier: Optional[str] = None
    file: Optional[Path] = field(default=None, compare=False, hash=False)
    scope: Optional[str] = field(default=None, compare=False, hash=False)

    @property
    def identity(self) -> Tuple[str, str, str, Optional[str]]:
        return (self.group, self.name, self.version, self.classifier)

    @property
    def jar_name(self) -> str:
        """Flat archive file name: name-version.jar (classifier appended when set)."""
        if self.classifier:
            return f"{self.name}-{self.version}-{self.classifier}.jar"
        return f"{self.name}-{self.version}.jar"

    @property
    def is_packaged(self) -> bool:
        """True for a project's own artifact or a compile-scope dependency."""
        return self.scope is None or self.scope == COMPILE_SCOPE

    def coordinates(self) -> str:
        parts = [self.group, self.name, self.version]
        if self.classifier:
            parts.append(self.classifier)
        return ":".join(parts)

    def __str__(self) -> str:
        return self.coordinates()


@dataclass(frozen=True)
class SubProject:
    """One sub-project of the module build, with its already-resolved dependencies."""

    name: str
    artifact: Artifact
    dependencies: Tuple[Artifact, ...] = ()


class ArtifactSet:
    """
    Immutable, identity-deduplicated artifact set that keeps first-seen order.
    Order matters: descriptor and archive layout must be reproducible.
    """

    __slots__ = ("_items", "_index")

    def __init__(self, artifacts: Iterable[Artifact] = ()) -> None:
        items = []
        index = set()
        for a in artifacts:
            if a.identity in index:
                continue
            index.add(a.identity)
            items.append(a)
        self._items: Tuple[Artifact, ...] = tuple(items)
        self._index = frozenset(index)

    def __contains__(self, artifact: object) -> bool:
        return isinstance(artifact, Artifact) and artifact.identity in self._index

    def __iter__(self) -> Iterator[Artifact]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ArtifactSet):
            return self._index == other._index
        if isinstance(other, (set, frozenset)):
            if not all(isinstance(a, Artifact) for a in other):
                return False
            return self._index == {a.identity for a in other}
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._index)

    def __repr__(self) -> str:
        return f"ArtifactSet({[a.coordinates() for a in self._items]!r})"

    def union(self, *others: Iterable[Artifact]) -> "ArtifactSet":
        merged = list(self._items)
        for other in others:
            merged.extend(other)
        return ArtifactSet(merged)


def ensure_dir(path: str | Path) -> None:
    """Create directory and parents if they do not exist."""
    Path(path).mkdir(parents=True, exist_ok=True)


def write_bytes(data: bytes, path: str | Path) -> Path:
    """Write bytes to path, creating parent directories. Return the path."""
    path = Path(path)
    ensure_dir(path.parent)
    with open(path, "wb") as f:
        f.write(data)
    return path


def module_file_stem(module_name: str) -> str:
    """Module name as used in archive file names: spaces become '-'."""
    return module_name.replace(" ", "-")


def unsigned_module_path(build_dir: str | Path, module_name: str) -> Path:
    return Path(build_dir) / f"{module_file_stem(module_name)}-unsigned.modl"


def signed_module_path(build_dir: str | Path, module_name: str) -> Path:
    return Path(build_dir) / f"{module_file_stem(module_name)}.modl"
