"""End-to-end tests of the ``flowloom`` command line."""

import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from flowloom.__main__ import build_parser, main
from flowloom.core.analysis.serialization import structure_to_dict
from flowloom.core.constants import MAX_TRACE_DEPTH
from flowloom.tests.sample_structures import shop_structures

GIT_HEAD = SimpleNamespace(returncode=0, stdout="0123456789abcdef\n", stderr="")


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "flowloom.yaml"
    path.write_text(
        "flow:\n"
        "  max_workers: 1\n"
        "database:\n"
        "  url: 'sqlite://'\n"
    )
    return str(path)


@pytest.fixture
def repos(tmp_path):
    """One directory per sample service holding its structure document."""
    paths = []
    for structure in shop_structures():
        repo = tmp_path / structure.project_name
        repo.mkdir()
        data = structure_to_dict(structure)
        data["project_path"] = str(repo)
        (repo / "flowloom-structure.json").write_text(json.dumps(data))
        paths.append(str(repo))
    return paths


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with patch("flowloom.__main__.setup_logging"):
        yield


def _repo_args(repos):
    args = []
    for repo in repos:
        args += ["--repo", repo]
    return args


class TestGraphCommand:

    def test_prints_edges(self, config_file, repos, capsys):
        code = main(["--config", config_file, "graph"] + _repo_args(repos))

        assert code == 0
        graph = json.loads(capsys.readouterr().out)
        assert graph["edges"] == [
            {"from": "order-service", "to": "inventory-service", "type": "DUBBO"},
            {"from": "order-service", "to": "payment-service", "type": "FEIGN"},
            {"from": "order-service", "to": "notification-service", "type": "MQ"},
        ]


class TestFlowsCommand:

    def test_public_repositories(self, config_file, repos, capsys):
        with patch("flowloom.core.flow.collaborators.subprocess.run", return_value=GIT_HEAD):
            code = main(
                ["--config", config_file, "flows", "--keyword", "charge", "--public"]
                + _repo_args(repos)
            )

        assert code == 0
        summary = json.loads(capsys.readouterr().out)
        assert [f["entry_point"] for f in summary["charge"]] == [
            "com.shop.payment.PaymentController#charge",
        ]
        assert summary["charge"][0]["mermaid_diagram"].startswith("sequenceDiagram")

    def test_username_without_token_fails_closed(self, config_file, repos):
        with patch("flowloom.core.flow.collaborators.subprocess.run") as run:
            code = main(
                ["--config", config_file, "flows", "--keyword", "charge", "--git-username", "ci"]
                + _repo_args(repos)
            )
        assert code == 1
        run.assert_not_called()

    def test_missing_repository_returns_error(self, config_file, tmp_path):
        code = main([
            "--config", config_file, "flows", "--keyword", "x", "--public",
            "--repo", str(tmp_path / "nowhere"),
        ])
        assert code == 1

    def test_max_depth_out_of_range(self, config_file, repos):
        with pytest.raises(SystemExit):
            main(
                ["--config", config_file, "flows", "--keyword", "charge", "--public",
                 "--max-depth", str(MAX_TRACE_DEPTH + 1)]
                + _repo_args(repos)
            )

    def test_credentials_mode_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["flows", "--keyword", "x", "--repo", "/r"])
