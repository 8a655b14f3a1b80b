"""Interfaces of the flow service's external collaborators.

The service only depends on the Protocols. ``JsonStructureScanner`` and
``LocalRepositoryProvider`` are the implementations used by the CLI: the
first reads the JSON document an external scanner leaves in the working
copy, the second accepts an existing local working copy and reports its
HEAD commit. Neither clones nor parses source code.
"""

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from ..analysis.models import CallChain, ProjectStructure
from ..analysis.serialization import structure_from_dict
from ..constants import GIT_TIMEOUT_SECONDS, STRUCTURE_FILENAME
from ..exceptions import MissingCredentialsError, RepositoryAcquisitionError
from .models import GitCredentials, RepositoryInfo

logger = logging.getLogger(__name__)


@runtime_checkable
class ProjectScanner(Protocol):
    def scan_project(self, project_path: str) -> ProjectStructure:
        ...


@runtime_checkable
class RepositoryProvider(Protocol):
    def get_or_clone_repository(
        self,
        url: str,
        credentials: GitCredentials,
    ) -> RepositoryInfo:
        ...


@runtime_checkable
class NarrativeGenerator(Protocol):
    def describe(self, chain: CallChain) -> Optional[str]:
        ...


class JsonStructureScanner:
    """Load ``<project>/flowloom-structure.json`` into a ProjectStructure."""

    def __init__(self, filename: str = STRUCTURE_FILENAME):
        self.filename = filename

    def scan_project(self, project_path: str) -> ProjectStructure:
        structure_file = Path(project_path) / self.filename
        with open(structure_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        structure = structure_from_dict(data)
        if not structure.project_path:
            structure.project_path = str(project_path)
        if not structure.project_name:
            structure.project_name = Path(project_path).resolve().name

        logger.info(
            f"Loaded structure for {structure.project_name}: "
            f"{len(structure.classes)} classes, {len(structure.entry_points)} entry points"
        )
        return structure


class LocalRepositoryProvider:
    """Treat repository URLs as paths of existing local working copies."""

    def __init__(self, timeout: int = GIT_TIMEOUT_SECONDS):
        self.timeout = timeout

    def get_or_clone_repository(
        self,
        url: str,
        credentials: GitCredentials,
    ) -> RepositoryInfo:
        if credentials is None:
            raise MissingCredentialsError("Repository credentials are required", url)

        local_path = url[len("file://"):] if url.startswith("file://") else url
        if not os.path.isdir(local_path):
            raise RepositoryAcquisitionError(f"Not a local working copy: {url}", url)

        try:
            proc = subprocess.run(
                ["git", "-C", local_path, "rev-parse", "HEAD"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise RepositoryAcquisitionError(
                f"git rev-parse timed out ({self.timeout}s limit)", url,
            ) from e
        except FileNotFoundError as e:
            raise RepositoryAcquisitionError("git is not installed or not in PATH", url) from e

        if proc.returncode != 0:
            error_msg = proc.stderr.strip() or f"git rev-parse failed with code {proc.returncode}"
            raise RepositoryAcquisitionError(error_msg, url)

        commit_id = proc.stdout.strip()
        logger.info(f"Using working copy {local_path} at {commit_id[:12]}")
        return RepositoryInfo(url=url, local_path=local_path, latest_commit_id=commit_id)
