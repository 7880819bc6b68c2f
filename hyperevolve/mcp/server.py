"""hyperevolve MCP server: exposes the rewrite simulation as tools for AI agents."""

from __future__ import annotations

import functools
import inspect
import logging
import os
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing, asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from hyperevolve.models import HypergraphState, InitializeResponse
from hyperevolve.service import SimulationService

# All logging goes to stderr; stdout is reserved for JSON-RPC
logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("hyperevolve.mcp")

# ---------------------------------------------------------------------------
# Service singleton, safe for single-process stdio MCP
# ---------------------------------------------------------------------------

_SERVICE: SimulationService | None = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    global _SERVICE
    save_dir = os.environ.get("HYPEREVOLVE_SAVE_DIR", "saved_hypergraphs")
    logger.info("Snapshot directory: %s", save_dir)
    _SERVICE = SimulationService(save_directory=save_dir)
    try:
        yield {}
    finally:
        if _SERVICE is not None:
            _SERVICE.stop()
            _SERVICE = None


mcp = FastMCP(
    "hyperevolve",
    instructions=(
        "hyperevolve simulates hypergraph rewriting in the style of the Wolfram Physics Model. "
        "Atoms are integer ids; relations are ordered lists of atoms. "
        "Each step applies the first match of the first applicable rule "
        "(default rule: {{x,y}} -> {{x,z},{z,y}}, which splits an edge with a fresh atom). "
        "Start with initialize_simulation (example names come from list_examples), "
        "then step_simulation or run_simulation. A step with no match means a fixed point."
    ),
    lifespan=app_lifespan,
)


def _get_service() -> SimulationService:
    """Return the active SimulationService."""
    if _SERVICE is None:
        raise RuntimeError("Simulation service is not initialized")
    return _SERVICE


def _safe_tool(fn: Callable[..., Any]) -> Callable[..., Any]:
    if inspect.iscoroutinefunction(fn):

        @functools.wraps(fn)
        async def async_wrapper(*args: Any, **kwargs: Any) -> dict:
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                logger.exception("Tool %s failed", fn.__name__)
                return {"error": True, "message": f"{type(exc).__name__}: {exc}"}

        return async_wrapper

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> dict:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Tool %s failed", fn.__name__)
            return {"error": True, "message": f"{type(exc).__name__}: {exc}"}

    return wrapper


def _summary(state: HypergraphState) -> dict:
    return {
        "step_number": state.step_number,
        "atom_count": len(state.atoms),
        "relation_count": len(state.relations),
    }


# ===================================================================
# Simulation tools (5)
# ===================================================================


@mcp.tool()
@_safe_tool
def initialize_simulation(
    example: str | None = None,
    state: dict[str, Any] | None = None,
) -> dict:
    """Reset the simulation to a catalog example, an explicit state or an empty graph.

    Any running background simulation is stopped first.

    Args:
        example: Catalog name such as "single_edge" or "triangle".
        state: Snapshot object with atoms, relations, step_number,
            next_atom_id and next_relation_id. Takes precedence over example.
    """
    try:
        model = HypergraphState.model_validate(state) if state is not None else None
    except ValidationError as exc:
        message = "; ".join(err["msg"] for err in exc.errors())
        logger.warning("Rejected initial state: %s", message)
        return InitializeResponse(success=False, message=message).model_dump(mode="json")
    return _get_service().initialize(state=model, example=example).model_dump(mode="json")


@mcp.tool()
@_safe_tool
def step_simulation(num_steps: int = 1) -> dict:
    """Apply up to num_steps rewrites, stopping early at a fixed point.

    Args:
        num_steps: Number of steps to attempt (minimum 1).
    """
    return _get_service().step(num_steps).model_dump(mode="json")


@mcp.tool()
@_safe_tool
async def run_simulation(update_interval_ms: int = 100, max_updates: int = 10) -> dict:
    """Run the simulation continuously and collect its progress updates.

    Runs until max_updates updates have been received or a fixed point is
    reached, then stops the run.

    Args:
        update_interval_ms: Delay between steps in milliseconds (minimum 10).
        max_updates: Number of updates to collect before stopping.
    """
    service = _get_service()
    updates: list[dict] = []
    if max_updates > 0:
        async with aclosing(service.run(update_interval_ms)) as stream:
            async for update in stream:
                updates.append(
                    {
                        **_summary(update.state),
                        "running": update.running,
                        "status_message": update.status_message,
                    }
                )
                if len(updates) >= max_updates or not update.running:
                    break
    final = service.stop()
    return {
        "update_count": len(updates),
        "updates": updates,
        "final_state": final.final_state.model_dump(mode="json"),
    }


@mcp.tool()
@_safe_tool
def stop_simulation() -> dict:
    """Stop any running simulation and return the final state."""
    return _get_service().stop().model_dump(mode="json")


@mcp.tool()
@_safe_tool
def get_current_state(include_events: bool = False) -> dict:
    """Get the current hypergraph snapshot.

    Args:
        include_events: Also return the most recent simulation events.
    """
    service = _get_service()
    result = service.get_current_state().model_dump(mode="json")
    if include_events:
        result["recent_events"] = [e.model_dump(mode="json") for e in service.recent_events()]
    return result


# ===================================================================
# Persistence & catalog tools (4)
# ===================================================================


@mcp.tool()
@_safe_tool
def save_hypergraph(
    path: str | None = None,
    overwrite: bool = False,
    pretty_print: bool = True,
) -> dict:
    """Save the current snapshot to a JSON file.

    Args:
        path: Target file. Defaults to a step-and-timestamp name in the save directory.
        overwrite: Replace an existing file.
        pretty_print: Indent the JSON output.
    """
    return _get_service().save(path, overwrite, pretty_print).model_dump(mode="json")


@mcp.tool()
@_safe_tool
def load_hypergraph(
    path: str | None = None,
    example: str | None = None,
    content: str | None = None,
) -> dict:
    """Replace the simulation from a saved file, a catalog example or JSON text.

    Exactly one source must be given. Any running simulation is stopped first.

    Args:
        path: Snapshot file to read.
        example: Catalog example name.
        content: Snapshot as JSON text.
    """
    return _get_service().load(path=path, example=example, content=content).model_dump(
        mode="json"
    )


@mcp.tool()
@_safe_tool
def list_examples() -> dict:
    """List the catalog of seed hypergraphs with their sizes and descriptions."""
    examples = _get_service().list_examples()
    return {"count": len(examples), "examples": [e.model_dump() for e in examples]}


@mcp.tool()
@_safe_tool
def list_saved_hypergraphs() -> dict:
    """List saved snapshot files, most recent first."""
    saves = _get_service().list_saves()
    return {"count": len(saves), "paths": saves}


# ===================================================================
# Resources (2)
# ===================================================================


@mcp.resource("hyperevolve://model")
def model_resource() -> str:
    """hyperevolve data model reference."""
    return (
        "# hyperevolve Data Model\n\n"
        "## Atoms\n"
        "Each atom has an integer `id` and optional string `metadata`.\n\n"
        "## Relations\n"
        "A relation is an ordered hyperedge over atoms. Order matters and an atom may repeat.\n"
        "- `id`: Unique relation identifier\n"
        "- `atoms`: Ordered list of atom ids\n"
        "- `metadata`: Optional string\n\n"
        "## Rules\n"
        "A rule replaces one embedding of its pattern with its replacement. Variables in "
        "the replacement that do not occur in the pattern become fresh atoms.\n"
        "Default rule: {{x,y}} -> {{x,z},{z,y}}.\n\n"
        "## Steps\n"
        "Each step applies the first match of the first rule that has one. "
        "When no rule matches the simulation is at a fixed point.\n\n"
        "## Snapshots\n"
        "`atoms`, `relations`, `step_number`, `next_atom_id`, `next_relation_id`. "
        "Counters must exceed every id in use and relations may only reference listed atoms.\n"
    )


@mcp.resource("hyperevolve://stats")
def stats_resource() -> str:
    """Live simulation statistics."""
    stats = _get_service().stats()
    lines = [
        "# hyperevolve Statistics\n",
        f"Step: {stats.step_number}",
        f"Atoms: {stats.atom_count}",
        f"Relations: {stats.relation_count}",
        f"Events: {stats.event_count}",
        f"Running: {stats.running}",
        f"Status: {stats.status}",
    ]
    if stats.relations_by_arity:
        lines.append("\n## Relations by Arity")
        for arity, count in stats.relations_by_arity.items():
            lines.append(f"- {arity}: {count}")
    return "\n".join(lines)


# ===================================================================
# Entry point
# ===================================================================


def run_server() -> None:
    """Run the hyperevolve MCP server over stdio."""
    mcp.run(transport="stdio")
