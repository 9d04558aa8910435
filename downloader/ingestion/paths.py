"""
Canonical on-disk layout for materialized projects.

Every acquisition mode writes to
``{root}/{organization_id}/projects/{project_id}/{ref}``; downstream
consumers rely on this layout being identical for git and archive
sources.
"""

from pathlib import Path, PurePosixPath
from typing import Optional, Union

from downloader.ingestion.models import ProjectRef

DEFAULT_REF = "main"
PROJECTS_SEGMENT = "projects"


class PathPolicy:
    """Computes destinations. Holds no state besides the default ref."""

    def __init__(self, default_ref: str = DEFAULT_REF):
        self.default_ref = default_ref

    def resolve_ref(
        self, branch: Optional[str] = None, commit: Optional[str] = None
    ) -> str:
        """
        Pick the path segment naming the revision.

        A commit wins when it is non-empty and not only whitespace, then
        the branch, then the default ref used for uploaded archives.
        """
        if commit and commit.strip():
            return commit.strip()
        if branch and branch.strip():
            return branch.strip()
        return self.default_ref

    def destination(
        self,
        root: Union[str, Path],
        organization_id: str,
        project_id: str,
        ref: Optional[str],
    ) -> Path:
        """
        Compute the destination directory for a project revision.

        Args:
            root: Download root shared by uploads and materialized trees.
            organization_id: Owning organization.
            project_id: Project identifier.
            ref: Resolved ref; blank falls back to the default ref.

        Returns:
            The destination path. Nothing is created.

        Raises:
            ValueError: If the ref could name a path outside the project.
        """
        if not ref or not ref.strip():
            ref = self.default_ref
        ref = ref.strip()

        ref_path = PurePosixPath(ref)
        if ref_path.is_absolute() or ".." in ref_path.parts:
            raise ValueError(f"Ref cannot be used as a path segment: {ref}")

        return (
            Path(root)
            / str(organization_id)
            / PROJECTS_SEGMENT
            / str(project_id)
            / ref
        )

    def destination_for(
        self,
        root: Union[str, Path],
        organization_id: str,
        project_ref: ProjectRef,
    ) -> Path:
        """Compute the destination for a project reference."""
        ref = self.resolve_ref(project_ref.branch, project_ref.commit)
        return self.destination(root, organization_id, project_ref.project_id, ref)
