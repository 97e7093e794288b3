"""Tests for the codecontext ingest command."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from codecontext.cli.ingest import expand_paths
from codecontext.cli.main import app
from codecontext.errors import UpstreamServiceError

runner = CliRunner()


@pytest.fixture
def project(cli_env: Path) -> Path:
    (cli_env / "src").mkdir()
    (cli_env / "src" / "util.py").write_text("def add(a, b):\n    return a + b\n", encoding="utf-8")
    (cli_env / "src" / "nested").mkdir()
    (cli_env / "src" / "nested" / "deep.py").write_text("X = 1\n", encoding="utf-8")
    (cli_env / "src" / "node_modules").mkdir()
    (cli_env / "src" / "node_modules" / "dep.js").write_text("module.exports = 1;\n", encoding="utf-8")
    (cli_env / "README.md").write_text("# Shop\n", encoding="utf-8")
    return cli_env


def _filenames(fake_index, namespace: str = "shop") -> set[str]:
    return {r["metadata"]["filename"] for r in fake_index.records(namespace)}


# ------------------------------------------------------------------
# Path expansion
# ------------------------------------------------------------------


def test_expand_paths_flat(project):
    assert expand_paths([Path("src")], recursive=False, exclude=[]) == [Path("src/util.py")]


def test_expand_paths_recursive_skips_vendor_dirs(project):
    found = expand_paths([Path("src")], recursive=True, exclude=[])
    assert Path("src/nested/deep.py") in found
    assert Path("src/node_modules/dep.js") not in found


def test_expand_paths_exclude_and_dedupe(project):
    found = expand_paths(
        [Path("src"), Path("src/util.py"), Path("README.md")], recursive=True, exclude=["deep.*"]
    )
    assert found == [Path("src/util.py"), Path("README.md")]


# ------------------------------------------------------------------
# Command
# ------------------------------------------------------------------


def test_ingest_writes_records(project, fake_index):
    result = runner.invoke(app, ["ingest", "src", "README.md", "-n", "shop"])
    assert result.exit_code == 0, result.output
    assert _filenames(fake_index) == {"src/util.py", "README.md"}
    assert "2 file(s) stored in 'shop'" in result.output


def test_ingest_record_layout(project, fake_index):
    runner.invoke(app, ["ingest", "src/util.py", "README.md", "-n", "shop"])
    by_file: dict[str, list[dict]] = {}
    for record in fake_index.records("shop"):
        by_file.setdefault(record["metadata"]["filename"], []).append(record["metadata"])
    # code gets a complete record plus a chunk; project-structure files stay whole
    assert sorted(m["section"] for m in by_file["src/util.py"]) == ["chunks", "full"]
    assert [m["type"] for m in by_file["README.md"]] == ["project-structure"]


def test_ingest_recursive(project, fake_index):
    result = runner.invoke(app, ["ingest", "src", "-n", "shop", "--recursive"])
    assert result.exit_code == 0, result.output
    assert _filenames(fake_index) == {"src/util.py", "src/nested/deep.py"}


def test_ingest_dry_run_writes_nothing(project, fake_index):
    result = runner.invoke(app, ["ingest", "src", "-n", "shop", "--dry-run"])
    assert result.exit_code == 0, result.output
    assert "Dry run" in result.output
    assert "src/util.py" in result.output
    assert fake_index.calls == []


def test_ingest_skips_binary_files(project, fake_index):
    (project / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe")
    result = runner.invoke(app, ["ingest", "logo.png", "README.md", "-n", "shop"])
    assert result.exit_code == 0, result.output
    assert "skipped" in result.output
    assert _filenames(fake_index) == {"README.md"}


def test_ingest_no_files(project):
    (project / "empty").mkdir()
    result = runner.invoke(app, ["ingest", "empty", "-n", "shop"])
    assert result.exit_code == 0
    assert "No files found" in result.output


def test_ingest_missing_configuration(project, monkeypatch, fake_index):
    monkeypatch.delenv("PINECONE_API_KEY")
    result = runner.invoke(app, ["ingest", "src", "-n", "shop"])
    assert result.exit_code == 1
    assert "Missing required configuration" in result.output
    assert fake_index.calls == []


def test_ingest_missing_voyage_key(project, monkeypatch):
    monkeypatch.delenv("VOYAGE_API_KEY")
    result = runner.invoke(app, ["ingest", "src", "-n", "shop"])
    assert result.exit_code == 1
    assert "VOYAGE_API_KEY" in result.output


def test_ingest_upstream_failure_exits_nonzero(project, fake_index):
    fake_index.fail_on["/vectors/upsert"] = UpstreamServiceError("quota exceeded", status=429)
    result = runner.invoke(app, ["ingest", "src", "-n", "shop"])
    assert result.exit_code == 1
    assert "quota exceeded" in result.output
    assert "1 failed" in result.output
