import pytest
from unittest.mock import MagicMock

from flowloom.core.analysis.dependency_analyzer import ServiceDependencyAnalyzer, StructureBatch
from flowloom.core.db.db import DatabaseManager
from flowloom.core.flow.models import RepositoryInfo
from flowloom.core.flow.store import FlowDocumentStore

from .sample_structures import shop_structures


@pytest.fixture
def structures():
    return shop_structures()


@pytest.fixture
def graph(structures):
    return ServiceDependencyAnalyzer().analyze(structures)


@pytest.fixture
def batch(structures):
    return StructureBatch(structures)


@pytest.fixture
def db_manager():
    db = DatabaseManager("sqlite://")
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def store(db_manager):
    return FlowDocumentStore(db_manager)


@pytest.fixture
def scanner(structures):
    """Scanner returning the sample structure for its project_path."""
    by_path = {s.project_path: s for s in structures}
    mock = MagicMock()
    mock.scan_project.side_effect = lambda path: by_path[path]
    return mock


@pytest.fixture
def repository_provider():
    """Provider treating every URL as an already checked-out path."""
    mock = MagicMock()
    mock.get_or_clone_repository.side_effect = lambda url, credentials: RepositoryInfo(
        url=url, local_path=url, latest_commit_id="c0ffee1",
    )
    return mock


@pytest.fixture
def repo_urls(structures):
    return [s.project_path for s in structures]
