from __future__ import annotations

from dataclasses import replace
from typing import Optional

import typer

from shapeflow.flows.pipeline import (
    analyse,
    facts_by_name,
    load_model,
    parse_hints,
    shape_inference_flow,
)
from shapeflow.ir import AnalysisError
from shapeflow.ops import registered_ops
from shapeflow.utils import AnalyserConfig, configure_logging

app = typer.Typer(help="shapeflow CLI")


@app.command()
def ops() -> None:
    """List the registered operators."""
    for name in registered_ops():
        typer.echo(name)


@app.command("analyse")
def analyse_cmd(
    factory: str = typer.Argument(..., help="Model factory, e.g. mypkg.models:build"),
    output: str = typer.Option(..., "--output", "-o", help="Name of the output node"),
    hint: list[str] = typer.Option([], "--hint", "-H", help="NAME=FACT, e.g. x=float32[1,S,3]"),
    fold: bool = typer.Option(True, help="Fold constant subgraphs"),
    prune: bool = typer.Option(True, help="Remove nodes the output does not need"),
    max_passes: Optional[int] = typer.Option(None, help="Fail if not converged after N rounds"),
) -> None:
    """
    Infer the datatype, shape and value of every node output.
    """
    try:
        config = AnalyserConfig.from_env()
        if max_passes is not None:
            config = replace(config, max_passes=max_passes)
        configure_logging(config.log_level)
        model = load_model(factory)
        analyser = analyse(
            model, output, parse_hints(hint), fold=fold, prune=prune, config=config
        )
    except (AnalysisError, ValueError) as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    for name, fact in facts_by_name(analyser).items():
        typer.echo(f"{name}: {fact}")


@app.command()
def run(
    factory: str = typer.Argument(..., help="Model factory, e.g. mypkg.models:build"),
    output: str = typer.Option(..., "--output", "-o", help="Name of the output node"),
    hint: list[str] = typer.Option([], "--hint", "-H", help="NAME=FACT"),
    output_dir: str = typer.Option("./outputs", help="Directory to write results"),
) -> None:
    """
    Run the Prefect flow and write the inferred facts as JSON.
    """
    result_path = shape_inference_flow(
        factory=factory, output=output, output_dir=output_dir, hints=hint
    )
    typer.echo(f"Results written to: {result_path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
