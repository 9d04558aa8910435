"""
Unit tests for metadata storage and the job service.
"""

import json
import shutil
import tempfile
import unittest
import zipfile
from pathlib import Path

from downloader.core.config import DownloaderConfig
from downloader.core.exceptions import ArchiveNotFound, LookupFailure
from downloader.engine import AcquisitionOrchestrator
from downloader.ingestion.git_handler import FetchOutcome, FetchState
from downloader.ingestion.models import JobDescriptor, ProjectType
from downloader.service import DownloaderService
from downloader.storage.backend import (
    JSONLinesPublisher,
    JSONMetadataStore,
    MemoryPublisher,
    ResultPublisher,
)

STORE = {
    "analyses": {
        "a-file": {"project_id": "p-file"},
        "a-git": {"project_id": "p-git", "branch": "main", "commit": "abc123"},
        "a-broken": {"project_id": "p-missing"},
        "a-bitbucket": {"project_id": "p-bitbucket", "branch": "main"},
    },
    "projects": {
        "p-file": {"type": "FILE"},
        "p-git": {"type": "github", "url": "https://github.com/acme/app.git"},
        "p-bad": {"type": "  "},
        "p-bitbucket": {"type": "bitbucket", "url": "https://bitbucket.org/acme/app.git"},
    },
    "integrations": {
        "i1": {"access_token": "tok", "provider": "github"},
        "i-empty": {"provider": "gitlab"},
    },
}


class StoreTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp())
        self.store_path = self.tmpdir / "store.json"
        self.store_path.write_text(json.dumps(STORE))
        self.store = JSONMetadataStore(str(self.store_path))

    def tearDown(self):
        shutil.rmtree(self.tmpdir)


class TestJSONMetadataStore(StoreTestCase):
    """Tests for the JSON metadata store."""

    def test_get_analysis(self):
        analysis = self.store.get_analysis("a-git")

        self.assertEqual(analysis.project_id, "p-git")
        self.assertEqual(analysis.branch, "main")
        self.assertEqual(analysis.commit, "abc123")

    def test_get_project(self):
        project = self.store.get_project("p-git")

        self.assertEqual(project.project_type, ProjectType.GITHUB)
        self.assertEqual(project.url, "https://github.com/acme/app.git")

    def test_invalid_project_type(self):
        with self.assertRaises(LookupFailure):
            self.store.get_project("p-bad")

    def test_unlisted_provider_is_vcs(self):
        """Test that a provider without its own type is still cloned."""
        project = self.store.get_project("p-bitbucket")

        self.assertEqual(project.project_type, ProjectType.VCS)
        self.assertTrue(project.project_type.is_vcs)
        self.assertEqual(project.provider, "BITBUCKET")

    def test_get_integration(self):
        credential = self.store.get_integration("i1")

        self.assertEqual(credential.token, "tok")
        self.assertNotIn("tok", repr(credential))

    def test_integration_without_token(self):
        with self.assertRaises(LookupFailure):
            self.store.get_integration("i-empty")

    def test_missing_record(self):
        with self.assertRaises(LookupFailure) as ctx:
            self.store.get_analysis("nope")

        self.assertEqual(ctx.exception.details["table"], "analyses")

    def test_unreadable_store(self):
        store = JSONMetadataStore(str(self.tmpdir / "missing.json"))

        with self.assertRaises(LookupFailure):
            store.get_analysis("a-file")


class TestJSONLinesPublisher(unittest.TestCase):

    def test_appends_lines(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "out" / "results.jsonl"
            publisher = JSONLinesPublisher(str(path))

            publisher.publish({"analysis_id": "a1"})
            publisher.publish({"analysis_id": "a2"})

            lines = path.read_text().splitlines()

        self.assertEqual([json.loads(line)["analysis_id"] for line in lines], ["a1", "a2"])


class FailingPublisher(ResultPublisher):

    def publish(self, message):
        raise ConnectionError("broker unavailable")


class RecordingFetcher:
    """Stands in for GitFetcher and creates an empty checkout."""

    def __init__(self):
        self.calls = []

    def fetch(self, locator, branch, destination, token, commit=None):
        self.calls.append((locator, branch))
        Path(destination).mkdir(parents=True, exist_ok=True)
        return FetchOutcome(Path(destination), [FetchState.CLONING, FetchState.DONE])


class TestDownloaderService(StoreTestCase):
    """Tests for end-to-end job handling."""

    def setUp(self):
        super().setUp()
        self.root = self.tmpdir / "downloads"
        self.config = DownloaderConfig(download_root=str(self.root))
        upload = self.root / "user-1" / "p-file" / "upload.zip"
        upload.parent.mkdir(parents=True)
        with zipfile.ZipFile(upload, "w") as archive:
            archive.writestr("site/composer.json", "{}")
            archive.writestr("site/composer.lock", "{}")

    def service(self, publisher=None):
        return DownloaderService(
            self.store,
            publisher or MemoryPublisher(),
            self.config,
            AcquisitionOrchestrator(self.config),
        )

    def test_file_job(self):
        """Test that a completed job publishes one result message."""
        publisher = MemoryPublisher()
        job = JobDescriptor("a-file", "p-file", None, "org-1")

        message = self.service(publisher).handle(job)

        self.assertEqual(publisher.messages, [message])
        self.assertEqual(message["analysis_id"], "a-file")
        self.assertEqual(message["project_id"], "p-file")
        self.assertIsNone(message["integration_id"])
        self.assertEqual(message["organization_id"], "org-1")
        self.assertEqual(message["primary_language"], "php")
        self.assertEqual(message["detected_languages"], ["php"])
        self.assertAlmostEqual(message["detection_confidence"], 0.95)
        self.assertEqual(
            message["destination"], str(self.root / "org-1" / "projects" / "p-file" / "main")
        )

    def test_message_is_json_serializable(self):
        job = JobDescriptor("a-file", "p-file", None, "org-1")

        message = self.service().handle(job)

        self.assertEqual(json.loads(json.dumps(message)), message)

    def test_unknown_analysis(self):
        publisher = MemoryPublisher()
        job = JobDescriptor("nope", "p-file", None, "org-1")

        with self.assertRaises(LookupFailure):
            self.service(publisher).handle(job)

        self.assertEqual(publisher.messages, [])

    def test_unknown_project(self):
        job = JobDescriptor("a-broken", "p-missing", None, "org-1")

        with self.assertRaises(LookupFailure):
            self.service().handle(job)

    def test_vcs_job_without_integration(self):
        job = JobDescriptor("a-git", "p-git", None, "org-1")

        with self.assertRaises(LookupFailure):
            self.service().handle(job)

    def test_unlisted_provider_job_is_cloned(self):
        """Test that a job for an unlisted provider is routed to git."""
        fetcher = RecordingFetcher()
        service = DownloaderService(
            self.store,
            MemoryPublisher(),
            self.config,
            AcquisitionOrchestrator(self.config, git_fetcher=fetcher),
        )

        message = service.handle(JobDescriptor("a-bitbucket", "p-bitbucket", "i1", "org-1"))

        self.assertEqual(fetcher.calls, [("https://bitbucket.org/acme/app.git", "main")])
        self.assertTrue(message["destination"].endswith("/p-bitbucket/main"))

    def test_acquisition_failure_not_published(self):
        publisher = MemoryPublisher()
        shutil.rmtree(self.root / "user-1")
        job = JobDescriptor("a-file", "p-file", None, "org-1")

        with self.assertRaises(ArchiveNotFound):
            self.service(publisher).handle(job)

        self.assertEqual(publisher.messages, [])

    def test_publish_failure_propagates(self):
        job = JobDescriptor("a-file", "p-file", None, "org-1")

        with self.assertRaises(ConnectionError):
            self.service(FailingPublisher()).handle(job)

    def test_job_descriptor_from_dict(self):
        job = JobDescriptor.from_dict(
            {"analysis_id": 7, "project_id": 9, "integration_id": "", "organization_id": "o"}
        )

        self.assertEqual(job.analysis_id, "7")
        self.assertIsNone(job.integration_id)


if __name__ == "__main__":
    unittest.main()
