from __future__ import annotations

import json

import pytest
from prefect.testing.utilities import prefect_test_harness
from typer.testing import CliRunner

from shapeflow.cli.main import app

runner = CliRunner()


def test_ops_lists_registered_operators() -> None:
    result = runner.invoke(app, ["ops"])
    assert result.exit_code == 0
    assert "Conv2D" in result.stdout.split()


def test_analyse_prints_facts_and_prunes() -> None:
    result = runner.invoke(app, ["analyse", "sample_models:build_chain", "--output", "y"])
    assert result.exit_code == 0, result.stdout
    lines = result.stdout.splitlines()
    assert "y: float32[1,2]" in lines
    assert "k: float32[1,2] = [[4.,6.]]" in lines
    assert not any(line.startswith(("dead:", "a:", "c:")) for line in lines)


def test_analyse_without_fold_and_prune_keeps_every_node() -> None:
    result = runner.invoke(
        app,
        ["analyse", "sample_models:build_chain", "-o", "y", "--no-fold", "--no-prune"],
    )
    assert result.exit_code == 0, result.stdout
    names = [line.split(":")[0] for line in result.stdout.splitlines()]
    assert names == ["x", "a", "c", "k", "y", "dead"]


def test_analyse_applies_hints() -> None:
    result = runner.invoke(
        app,
        ["analyse", "sample_models:build_chain", "-o", "y", "--hint", "x=[1,2]", "--no-fold"],
    )
    assert result.exit_code == 0, result.stdout
    assert "x: float32[1,2]" in result.stdout.splitlines()


def test_analyse_reports_conflicting_hints() -> None:
    result = runner.invoke(
        app, ["analyse", "sample_models:build_chain", "-o", "y", "--hint", "x=int32"]
    )
    assert result.exit_code == 1


@pytest.mark.parametrize(
    "factory",
    [
        "sample_models",
        "sample_models:not_a_model",
        "sample_models:missing",
        "no_such_module_anywhere:build",
    ],
)
def test_analyse_rejects_bad_factories(factory: str) -> None:
    result = runner.invoke(app, ["analyse", factory, "-o", "y"])
    assert result.exit_code == 1
    assert "error:" in result.output


def test_analyse_rejects_non_positive_pass_limit() -> None:
    result = runner.invoke(
        app, ["analyse", "sample_models:build_chain", "-o", "y", "--max-passes", "0"]
    )
    assert result.exit_code == 1
    assert "max_passes must be positive" in result.output


@pytest.fixture(scope="module")
def prefect_backend():
    with prefect_test_harness():
        yield


def test_run_writes_facts_json(tmp_path, prefect_backend) -> None:
    result = runner.invoke(
        app, ["run", "sample_models:build_chain", "-o", "y", "--output-dir", str(tmp_path)]
    )
    assert result.exit_code == 0, result.output
    facts = json.loads((tmp_path / "facts.json").read_text())
    assert facts == {"x": "float32[1,2]", "k": "float32[1,2] = [[4.,6.]]", "y": "float32[1,2]"}
    assert "Results written to:" in result.output
