"""
Git operations handler for repository acquisition.

Clones a repository branch into its destination, falls back to a
single in-place pull when the clone fails (typically because a
previous run already populated the destination), and optionally pins
the working tree to a commit.

Git is driven as an external process behind ``VersionControlClient``
so arbitrary repository states behave exactly as the git CLI does.
Only exit statuses drive decisions; process output is forwarded to
this process's own streams with credentials removed.
"""

import logging
import os
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, TextIO
from urllib.parse import quote

from downloader.core.config import GitConfig
from downloader.core.exceptions import CheckoutFailure, CloneFailure
from downloader.utils.redaction import redact

logger = logging.getLogger(__name__)


class FetchState(Enum):
    """States of a single git acquisition."""
    CLONING = "cloning"
    RECOVERING = "recovering"
    CHECKOUT_PENDING = "checkout_pending"
    DONE = "done"
    FAILED = "failed"


@dataclass
class FetchOutcome:
    """Result of a successful fetch."""

    destination: Path
    states: List[FetchState] = field(default_factory=list)

    @property
    def recovered(self) -> bool:
        """True when the clone failed and the pull fallback succeeded."""
        return FetchState.RECOVERING in self.states

    @property
    def checked_out(self) -> bool:
        return FetchState.CHECKOUT_PENDING in self.states


def build_authenticated_url(
    locator: str, token: str, oauth_providers: Sequence[str] = ("gitlab",)
) -> str:
    """
    Insert an access token into a clone URL.

    Providers that expect OAuth-style tokens (matched as a substring of
    the locator) get an ``oauth2:`` user; everyone else gets the bare
    token as the user.

    Raises:
        ValueError: If the locator has no scheme separator.
    """
    if "://" not in locator:
        raise ValueError("Clone locator is not a URL")

    userinfo = quote(token, safe="")
    if any(provider in locator for provider in oauth_providers):
        userinfo = f"oauth2:{userinfo}"

    return locator.replace("://", f"://{userinfo}@", 1)


class VersionControlClient(ABC):
    """
    Capability interface over a version-control client.

    Each operation returns the process exit status. Timeouts surface as
    ``subprocess.TimeoutExpired`` and a missing executable as ``OSError``.
    """

    @abstractmethod
    def clone(
        self, url: str, branch: str, destination: Path, secrets: Sequence[str] = ()
    ) -> int:
        pass

    @abstractmethod
    def pull(self, workdir: Path, secrets: Sequence[str] = ()) -> int:
        pass

    @abstractmethod
    def checkout(self, workdir: Path, ref: str) -> int:
        pass


class SubprocessGitClient(VersionControlClient):
    """Runs the git CLI, forwarding redacted output to our own streams."""

    def __init__(
        self,
        config: GitConfig = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ):
        self.config = config or GitConfig()
        self._stdout = stdout
        self._stderr = stderr

    def clone(
        self, url: str, branch: str, destination: Path, secrets: Sequence[str] = ()
    ) -> int:
        cmd = [self.config.executable, "clone"]
        if self.config.recursive:
            cmd.append("--recursive")
        cmd.extend(["-b", branch, url, str(destination)])
        return self._run(cmd, secrets=secrets)

    def pull(self, workdir: Path, secrets: Sequence[str] = ()) -> int:
        return self._run([self.config.executable, "pull"], cwd=workdir, secrets=secrets)

    def checkout(self, workdir: Path, ref: str) -> int:
        # A ref starting with "-" must not be parsed as an option
        return self._run(
            [self.config.executable, "checkout", "--end-of-options", ref], cwd=workdir
        )

    def _run(
        self,
        cmd: List[str],
        cwd: Optional[Path] = None,
        secrets: Sequence[str] = (),
    ) -> int:
        logger.debug(f"Running: {redact(' '.join(cmd), secrets)}")

        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"

        result = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=self.config.timeout,
            env=env,
        )

        self._forward(result.stdout, self._stdout or sys.stdout, secrets)
        self._forward(result.stderr, self._stderr or sys.stderr, secrets)
        return result.returncode

    @staticmethod
    def _forward(output: str, stream: TextIO, secrets: Sequence[str]) -> None:
        if output:
            stream.write(redact(output, secrets))
            stream.flush()


class GitFetcher:
    """
    Clone / recover / checkout state machine.

    ``CLONING`` goes to ``DONE`` (or ``CHECKOUT_PENDING`` when a commit
    is pinned) on success, and to ``RECOVERING`` on a non-zero exit.
    ``RECOVERING`` makes one pull attempt; there is no backoff loop.
    Timeouts are fatal immediately and marked retryable.
    """

    def __init__(self, config: GitConfig = None, client: VersionControlClient = None):
        self.config = config or GitConfig()
        self.client = client or SubprocessGitClient(self.config)

    def fetch(
        self,
        locator: str,
        branch: str,
        destination: Path,
        token: str,
        commit: Optional[str] = None,
    ) -> FetchOutcome:
        """
        Materialize a repository branch, optionally pinned to a commit.

        Args:
            locator: Un-credentialed HTTPS clone URL.
            branch: Branch to clone.
            destination: Directory to clone into.
            token: Access token embedded in the clone URL only.
            commit: Commit to check out after cloning; blank means none.

        Returns:
            FetchOutcome with the visited states.

        Raises:
            CloneFailure: If clone and the pull fallback both fail.
            CheckoutFailure: If the pinned commit cannot be checked out.
        """
        destination = Path(destination)
        outcome = FetchOutcome(destination=destination)
        secrets = [token, quote(token, safe="")]
        details = {"locator": locator, "branch": branch, "destination": str(destination)}

        try:
            url = build_authenticated_url(locator, token, self.config.oauth_providers)
        except ValueError as e:
            outcome.states.append(FetchState.FAILED)
            raise CloneFailure(f"Cannot clone {locator}: {e}", details=details) from e

        outcome.states.append(FetchState.CLONING)
        logger.info(f"Cloning {locator} (branch {branch}) into {destination}")

        status = self._invoke(
            outcome, CloneFailure, details,
            self.client.clone, url, branch, destination, secrets=secrets,
        )

        if status != 0:
            logger.warning(
                f"Clone of {locator} exited with status {status}; "
                f"attempting update in place"
            )
            self._recover(outcome, details, secrets)

        if commit and commit.strip():
            self._checkout(outcome, commit.strip(), details)

        outcome.states.append(FetchState.DONE)
        logger.info(f"Repository {locator} materialized at {destination}")
        return outcome

    def _recover(self, outcome: FetchOutcome, details: dict, secrets: List[str]) -> None:
        outcome.states.append(FetchState.RECOVERING)
        destination = outcome.destination

        if not destination.is_dir():
            outcome.states.append(FetchState.FAILED)
            raise CloneFailure(
                f"Clone of {details['locator']} failed and {destination} "
                f"does not exist to update",
                details=details,
            )

        status = self._invoke(
            outcome, CloneFailure, details,
            self.client.pull, destination, secrets=secrets,
        )
        if status != 0:
            outcome.states.append(FetchState.FAILED)
            raise CloneFailure(
                f"Clone and pull of {details['locator']} failed "
                f"(pull exit status {status})",
                details={**details, "exit_status": status},
            )

        logger.info(f"Updated existing checkout at {destination}")

    def _checkout(self, outcome: FetchOutcome, commit: str, details: dict) -> None:
        outcome.states.append(FetchState.CHECKOUT_PENDING)
        details = {**details, "commit": commit}
        logger.info(f"Checking out commit {commit}")

        status = self._invoke(
            outcome, CheckoutFailure, details,
            self.client.checkout, outcome.destination, commit,
        )
        if status != 0:
            outcome.states.append(FetchState.FAILED)
            raise CheckoutFailure(
                f"Checkout of {commit} failed (exit status {status})",
                details={**details, "exit_status": status},
            )

    def _invoke(self, outcome, failure_cls, details, operation, *args, **kwargs) -> int:
        """Run one client operation, mapping process errors to failure_cls."""
        try:
            return operation(*args, **kwargs)
        except subprocess.TimeoutExpired:
            # The expired command line holds the credentialed URL; do not chain it
            outcome.states.append(FetchState.FAILED)
            raise failure_cls(
                f"Git operation timed out after {self.config.timeout} seconds "
                f"for {details['locator']}",
                details={**details, "timeout": self.config.timeout},
                retryable=True,
            ) from None
        except OSError as e:
            outcome.states.append(FetchState.FAILED)
            raise failure_cls(
                f"Git could not be executed for {details['locator']}: {e.strerror or e}",
                details=details,
            ) from e
