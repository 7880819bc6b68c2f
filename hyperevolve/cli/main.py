"""hyperevolve CLI: run and inspect hypergraph rewrite simulations from the command line."""

from __future__ import annotations

import click

from hyperevolve.engine.examples import get_all_example_info, get_example, list_examples
from hyperevolve.engine.persistence import (
    DEFAULT_SAVE_DIRECTORY,
    PersistenceError,
    PersistenceManager,
    SaveConfig,
)
from hyperevolve.engine.simulation import ContinuousSimulationConfig, SimulationManager


@click.group()
@click.option(
    "--save-dir",
    default=DEFAULT_SAVE_DIRECTORY,
    envvar="HYPEREVOLVE_SAVE_DIR",
    show_default=True,
    help="Directory for saved snapshots.",
)
@click.pass_context
def cli(ctx: click.Context, save_dir: str) -> None:
    """hyperevolve CLI: evolve hypergraphs with rewrite rules."""
    ctx.ensure_object(dict)
    ctx.obj["save_dir"] = save_dir


@cli.command()
def examples() -> None:
    """List the catalog of seed hypergraphs."""
    for info in get_all_example_info():
        click.echo(
            f"  {info['name']:<12} atoms={info['atom_count']}  "
            f"relations={info['relation_count']}  {info['description']}"
        )


@cli.command()
@click.argument("example", type=click.Choice(list_examples()))
@click.option(
    "--steps", default=5, show_default=True, type=click.IntRange(min=0), help="Maximum steps."
)
@click.option(
    "--fixed-point/--no-fixed-point",
    default=True,
    show_default=True,
    help="Stop at the first step with no applicable rule.",
)
@click.option("--save", "save_result", is_flag=True, help="Save the final snapshot.")
@click.option("--output", default=None, type=click.Path(dir_okay=False), help="Snapshot file path.")
@click.option("--overwrite", is_flag=True, help="Overwrite an existing snapshot file.")
@click.option("--verbose", "-v", is_flag=True, help="Print every event.")
@click.pass_context
def simulate(
    ctx: click.Context,
    example: str,
    steps: int,
    fixed_point: bool,
    save_result: bool,
    output: str | None,
    overwrite: bool,
    verbose: bool,
) -> None:
    """Run the edge-splitting rule on a catalog example."""
    state = get_example(example)
    assert state is not None
    manager = SimulationManager.from_state(state)
    result = manager.run_continuous(
        ContinuousSimulationConfig(
            max_steps=steps, stop_on_fixed_point=fixed_point, report_interval=0
        )
    )
    if verbose:
        for event in result.events:
            click.echo(
                f"  step {event.step_number}: rule {event.rule_id} "
                f"removed={list(event.relations_removed)} "
                f"atoms+={list(event.atoms_created)} "
                f"relations+={list(event.relations_created)}"
            )
    final = result.final_state
    click.echo(
        f"Executed {result.steps_executed} steps ({result.stop_reason.value}): "
        f"{len(final.atoms)} atoms, {len(final.relations)} relations"
    )

    if save_result or output:
        persistence = PersistenceManager(ctx.obj["save_dir"])
        try:
            path = persistence.save_state(
                final, output, SaveConfig(overwrite_existing=overwrite)
            )
        except PersistenceError as exc:
            raise click.ClickException(str(exc))
        click.echo(f"Saved snapshot to {path}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--relations", "show_relations", is_flag=True, help="List every relation.")
def show(path: str, show_relations: bool) -> None:
    """Show statistics of a saved snapshot."""
    try:
        state = PersistenceManager().load_state(path)
    except PersistenceError as exc:
        raise click.ClickException(str(exc))
    stats = state.to_hypergraph().stats()
    click.echo(
        f"Step: {state.step_number}  Atoms: {stats['atom_count']}  "
        f"Relations: {stats['relation_count']}"
    )
    click.echo(f"Next ids: atom={state.next_atom_id}  relation={state.next_relation_id}")
    if stats["relations_by_arity"]:
        click.echo("Relations by arity:")
        for arity, count in stats["relations_by_arity"].items():
            click.echo(f"  {arity}: {count}")
    if show_relations:
        for relation in state.relations:
            click.echo(f"  {relation.id}: {relation.atoms}")


@cli.command()
@click.pass_context
def saves(ctx: click.Context) -> None:
    """List saved snapshots, most recent first."""
    paths = PersistenceManager(ctx.obj["save_dir"]).list_saved()
    if not paths:
        click.echo("No saved snapshots.")
        return
    for path in paths:
        click.echo(f"  {path}")


@cli.command()
@click.pass_context
def mcp(ctx: click.Context) -> None:
    """Start the MCP server for AI agent integration."""
    import os

    os.environ["HYPEREVOLVE_SAVE_DIR"] = ctx.obj["save_dir"]
    from hyperevolve.mcp.server import run_server

    run_server()


if __name__ == "__main__":
    cli()
