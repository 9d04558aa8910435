"""
Storage backend implementations.

Defines the read-only metadata store that hydrates a job descriptor
and the publisher that receives result messages, and provides local
JSON implementations of both.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from downloader.core.exceptions import LookupFailure
from downloader.ingestion.models import IntegrationCredential, ProjectType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisRecord:
    """Analysis row: which project and revision to materialize."""
    analysis_id: str
    project_id: str
    branch: Optional[str] = None
    commit: Optional[str] = None

    @classmethod
    def from_dict(cls, analysis_id: str, data: Dict[str, Any]) -> "AnalysisRecord":
        """Create from dictionary."""
        return cls(
            analysis_id=analysis_id,
            project_id=str(data["project_id"]),
            branch=data.get("branch"),
            commit=data.get("commit"),
        )


@dataclass(frozen=True)
class ProjectRecord:
    """Project row: where the project's files come from."""
    project_id: str
    project_type: ProjectType
    url: Optional[str] = None
    # Stored type, upper-cased; names the provider of a generic VCS project
    provider: Optional[str] = None

    @classmethod
    def from_dict(cls, project_id: str, data: Dict[str, Any]) -> "ProjectRecord":
        """Create from dictionary."""
        return cls(
            project_id=project_id,
            project_type=ProjectType.parse(data["type"]),
            url=data.get("url"),
            provider=str(data["type"]).strip().upper(),
        )


class MetadataStore(ABC):
    """
    Abstract base class for metadata stores.

    Lookups are read-only. Implementations raise LookupFailure when a
    record is missing or the store cannot be read.
    """

    @abstractmethod
    def get_analysis(self, analysis_id: str) -> AnalysisRecord:
        """Load an analysis record."""
        pass

    @abstractmethod
    def get_project(self, project_id: str) -> ProjectRecord:
        """Load a project record."""
        pass

    @abstractmethod
    def get_integration(self, integration_id: str) -> IntegrationCredential:
        """Load the credential of an integration."""
        pass


class JSONMetadataStore(MetadataStore):
    """
    JSON-document metadata store.

    Reads a single document of the form::

        {"analyses": {id: {...}}, "projects": {id: {...}},
         "integrations": {id: {"access_token": ..., "provider": ...}}}
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._data: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._data is None:
            try:
                with open(self.path, "r") as f:
                    self._data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise LookupFailure(
                    f"Metadata store unreadable: {e}",
                    details={"path": str(self.path)},
                ) from e
        return self._data

    def _record(self, table: str, record_id: str) -> Dict[str, Any]:
        records = self._load().get(table, {})
        if str(record_id) not in records:
            raise LookupFailure(
                f"No {table} record with id {record_id}",
                details={"table": table, "id": str(record_id)},
            )
        return records[str(record_id)]

    def get_analysis(self, analysis_id: str) -> AnalysisRecord:
        data = self._record("analyses", analysis_id)
        try:
            return AnalysisRecord.from_dict(str(analysis_id), data)
        except KeyError as e:
            raise LookupFailure(
                f"Analysis {analysis_id} is missing field {e}",
                details={"id": str(analysis_id)},
            ) from e

    def get_project(self, project_id: str) -> ProjectRecord:
        data = self._record("projects", project_id)
        try:
            return ProjectRecord.from_dict(str(project_id), data)
        except (KeyError, ValueError) as e:
            raise LookupFailure(
                f"Project {project_id} record is invalid: {e}",
                details={"id": str(project_id)},
            ) from e

    def get_integration(self, integration_id: str) -> IntegrationCredential:
        data = self._record("integrations", integration_id)
        token = data.get("access_token")
        if not token:
            raise LookupFailure(
                f"Integration {integration_id} has no access token",
                details={"id": str(integration_id)},
            )
        return IntegrationCredential(token=token, provider=data.get("provider"))


class ResultPublisher(ABC):
    """Receives one result message per completed job."""

    @abstractmethod
    def publish(self, message: Dict[str, Any]) -> None:
        pass


class JSONLinesPublisher(ResultPublisher):
    """Appends each message as one JSON line."""

    def __init__(self, path: str):
        self.path = Path(path)

    def publish(self, message: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as f:
            f.write(json.dumps(message, sort_keys=True) + "\n")
        logger.debug(f"Result appended to {self.path}")


class MemoryPublisher(ResultPublisher):
    """Keeps messages in memory."""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []

    def publish(self, message: Dict[str, Any]) -> None:
        self.messages.append(message)
