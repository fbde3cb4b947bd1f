from __future__ import annotations

import importlib
import json
from dataclasses import replace
from pathlib import Path
from typing import cast

from prefect import flow, get_run_logger, task

from shapeflow.analyser import Analyser
from shapeflow.ir import InvalidReferenceError, Model, TensorFact, parse_fact
from shapeflow.utils import AnalyserConfig, get_logger

logger = get_logger(__name__)


def load_model(factory: str) -> Model:
    """
    Build a model from a ``module:function`` reference.
    The function is called without arguments and must return a Model.
    """
    module_name, sep, attr = factory.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError("factory must look like 'package.module:function'")
    try:
        module = importlib.import_module(module_name)
        build = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Cannot load model factory '{factory}': {e}") from e
    model = build()
    if not isinstance(model, Model):
        raise ValueError(f"{factory} returned {type(model).__name__}, not a Model")
    model.validate()
    return model


def parse_hints(items: list[str]) -> dict[str, TensorFact]:
    """Parse ``name=fact`` pairs, e.g. ``x=float32[1,S,8,3]``."""
    hints: dict[str, TensorFact] = {}
    for item in items:
        name, sep, text = item.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Hint '{item}' must look like NAME=FACT")
        hints[name.strip()] = parse_fact(text)
    return hints


def analyse(
    model: Model,
    output: str,
    hints: dict[str, TensorFact] | None = None,
    *,
    fold: bool = True,
    prune: bool = True,
    config: AnalyserConfig | None = None,
) -> Analyser:
    if output not in model.nodes_by_name:
        raise InvalidReferenceError(f"There is no node named '{output}'.", output)
    analyser = Analyser(model, model.nodes_by_name[output], config)
    for name, fact in (hints or {}).items():
        analyser.hint_by_name(name, fact)
    analyser.run()
    if fold:
        analyser.propagate_constants()
        analyser.run()
    if prune:
        mapping = analyser.prune_unused()
        logger.info("Kept %d of %d nodes.", len(analyser.nodes), len(mapping))
    return analyser


def facts_by_name(analyser: Analyser) -> dict[str, str]:
    return {node.name: str(analyser.output_fact(node.id)) for node in analyser.nodes}


@task
def run_analysis(
    factory: str,
    output: str,
    hints: list[str],
    fold: bool,
    prune: bool,
    max_passes: int | None,
) -> dict[str, str]:
    run_logger = get_run_logger()
    run_logger.info(f"Building model from {factory}")
    model = load_model(factory)
    config = AnalyserConfig.from_env()
    if max_passes is not None:
        config = replace(config, max_passes=max_passes)
    analyser = analyse(
        model, output, parse_hints(hints), fold=fold, prune=prune, config=config
    )
    run_logger.info(f"Analysis converged after {analyser.current_pass} passes")
    return facts_by_name(analyser)


@task
def export_facts(output_dir: str, facts: dict[str, str]) -> str:
    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    result_file = out_path / "facts.json"
    result_file.write_text(json.dumps(facts, indent=2))
    return str(result_file)


@flow(name="shapeflow-shape-inference")
def shape_inference_flow(
    factory: str,
    output: str,
    output_dir: str,
    hints: list[str] | None = None,
    fold: bool = True,
    prune: bool = True,
    max_passes: int | None = None,
) -> str:
    """
    Orchestrates a full analysis:
    build model → hint → propagate → fold constants → prune → export
    """
    facts = run_analysis(factory, output, hints or [], fold, prune, max_passes)
    out = export_facts(output_dir, facts)
    return cast(str, out)
