"""
Scope resolver: classify sub-project artifacts into Client, Designer and Gateway sets.

Pure function over its inputs; every call returns fresh immutable sets.
A sub-project contributes its own artifact and its compile-scope dependencies to
each scope letter contained in its scope code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .artifacts import COMPILE_SCOPE, Artifact, ArtifactSet, SubProject

logger = logging.getLogger(__name__)

CLIENT = "C"
DESIGNER = "D"
GATEWAY = "G"
SCOPE_LETTERS = (CLIENT, DESIGNER, GATEWAY)


@dataclass(frozen=True)
class ScopeSets:
    """Result of one resolver pass. warnings lists sub-projects skipped for a missing/malformed code."""

    client: ArtifactSet
    designer: ArtifactSet
    gateway: ArtifactSet
    warnings: Tuple[str, ...] = ()

    def for_letter(self, letter: str) -> ArtifactSet:
        return {CLIENT: self.client, DESIGNER: self.designer, GATEWAY: self.gateway}[letter]

    @property
    def client_designer(self) -> ArtifactSet:
        return self.client.union(self.designer)


def scope_letters(code: str) -> Tuple[str, ...]:
    """Return the scope letters contained in code, in C, D, G order. Case-sensitive."""
    return tuple(letter for letter in SCOPE_LETTERS if letter in code)


def project_contributions(project: SubProject) -> List[Artifact]:
    """Own artifact first, then every dependency whose build scope is exactly 'compile'."""
    out = [project.artifact]
    out.extend(dep for dep in project.dependencies if dep.scope == COMPILE_SCOPE)
    return out


def resolve_scopes(
    projects: Sequence[SubProject],
    scope_codes: Mapping[str, Any],
) -> ScopeSets:
    """
    Build the three scope sets for projects. scope_codes maps sub-project name -> scope code.
    Missing or non-string codes skip the project with a warning; codes with no C/D/G
    letters skip it silently.
    """
    buckets: Dict[str, List[Artifact]] = {letter: [] for letter in SCOPE_LETTERS}
    warnings: List[str] = []

    for project in projects:
        code = scope_codes.get(project.name)
        logger.info("project=%s, scope=%s", project.name, code)

        if code is None or not isinstance(code, str):
            msg = f"No valid scope code for sub-project {project.name!r} (got {code!r}); skipping"
            logger.warning(msg)
            warnings.append(msg)
            continue

        letters = scope_letters(code)
        if not letters:
            logger.debug("Scope code %r of %s selects no scope; skipping", code, project.name)
            continue

        contributed = project_contributions(project)
        logger.info(
            "Found %d dependencies (%d compile) for project: %s",
            len(project.dependencies),
            len(contributed) - 1,
            project.name,
        )
        for letter in letters:
            buckets[letter].extend(contributed)

    return ScopeSets(
        client=ArtifactSet(buckets[CLIENT]),
        designer=ArtifactSet(buckets[DESIGNER]),
        gateway=ArtifactSet(buckets[GATEWAY]),
        warnings=tuple(warnings),
    )


__all__ = [
    "CLIENT",
    "DESIGNER",
    "GATEWAY",
    "SCOPE_LETTERS",
    "ScopeSets",
    "project_contributions",
    "resolve_scopes",
    "scope_letters",
]
