"""
Data structures describing an acquisition job and its result.

Provides the job descriptor received from the job source, the project
reference resolved from the metadata store, and the materialized tree
produced by acquisition.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class ProjectType(Enum):
    """
    Source of a project's files.

    ``VCS`` stands for any hosting provider without a member of its own;
    every type other than ``FILE`` is cloned with git.
    """
    GITHUB = "GITHUB"
    GITLAB = "GITLAB"
    VCS = "VCS"
    FILE = "FILE"

    @property
    def is_vcs(self) -> bool:
        """True for every hosting-provider variant."""
        return self is not ProjectType.FILE

    @classmethod
    def parse(cls, value: str) -> "ProjectType":
        """Parse a stored project type, case-insensitively."""
        normalized = str(value or "").strip().upper()
        if not normalized:
            raise ValueError("Project type is empty")
        try:
            return cls(normalized)
        except ValueError:
            return cls.VCS


@dataclass(frozen=True)
class JobDescriptor:
    """Identifies one analysis request. Immutable once received."""

    analysis_id: str
    project_id: str
    integration_id: Optional[str]
    organization_id: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobDescriptor":
        """Build a descriptor from a decoded job message."""
        return cls(
            analysis_id=str(data["analysis_id"]),
            project_id=str(data["project_id"]),
            integration_id=(
                str(data["integration_id"]) if data.get("integration_id") else None
            ),
            organization_id=str(data["organization_id"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_id": self.analysis_id,
            "project_id": self.project_id,
            "integration_id": self.integration_id,
            "organization_id": self.organization_id,
        }


@dataclass(frozen=True)
class ProjectRef:
    """
    Where a project's files come from and which revision to materialize.

    Branch and commit are not exclusive: a commit, when present, is
    checked out after the branch has been cloned.
    """

    project_id: str
    project_type: ProjectType
    url: Optional[str] = None
    branch: Optional[str] = None
    commit: Optional[str] = None

    @property
    def has_commit(self) -> bool:
        """True when a commit pin is set and not blank."""
        return bool(self.commit and self.commit.strip())


@dataclass(frozen=True)
class IntegrationCredential:
    """An access token scoped to one hosting provider."""

    token: str
    provider: Optional[str] = None

    def __repr__(self) -> str:
        return f"IntegrationCredential(provider={self.provider!r}, token='***')"


@dataclass
class MaterializedTree:
    """
    The on-disk result of an acquisition.

    ``path`` is absolute and exists; nothing was written outside it.
    """

    path: Path
    source: str  # "git" or "archive"
    files_written: Optional[int] = None
    archive_path: Optional[Path] = None
    states: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "path": str(self.path),
            "source": self.source,
            "files_written": self.files_written,
            "archive_path": str(self.archive_path) if self.archive_path else None,
            "states": list(self.states),
        }
