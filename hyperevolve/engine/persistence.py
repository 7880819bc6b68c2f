"""Snapshot persistence to JSON files.

Layout of a snapshot file:
    {
      "atoms": [{"id": 0, "metadata": null}, ...],
      "relations": [{"id": 0, "atoms": [0, 1], "metadata": null}, ...],
      "step_number": 3,
      "next_atom_id": 5,
      "next_relation_id": 4
    }

Snapshots are validated on load; an inconsistent file is rejected, never
repaired.

Security:
    Paths are resolved to absolute paths and checked for null bytes. File
    names given to quick_save/quick_load must stay inside the save directory.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .state import HypergraphState

DEFAULT_SAVE_DIRECTORY = "saved_hypergraphs"


class PersistenceError(Exception):
    """Base class for snapshot persistence failures."""

    kind = "persistence"


class PersistenceIOError(PersistenceError):
    kind = "io"


class InvalidPathError(PersistenceError):
    kind = "invalid_path"


class SnapshotExistsError(PersistenceError):
    """Target file exists and the save config forbids overwriting it."""

    kind = "exists"


class SnapshotNotFoundError(PersistenceError):
    kind = "not_found"


class InvalidSnapshotError(PersistenceError):
    """File content is not a well-formed, consistent snapshot."""

    kind = "invalid_data"


@dataclass
class SaveConfig:
    create_directories: bool = True
    overwrite_existing: bool = False
    pretty_print: bool = True


def _validate_path(path: str | Path, base_dir: Path | None = None) -> Path:
    """Validate and resolve a file path.

    Args:
        path: The path to validate
        base_dir: Optional directory the path must resolve inside of

    Returns:
        Resolved absolute Path

    Raises:
        InvalidPathError: If the path contains null bytes or escapes base_dir
    """
    if "\x00" in str(path):
        raise InvalidPathError(f"Invalid path (contains null bytes): {str(path)!r}")

    resolved = Path(path).resolve()

    if base_dir is not None:
        try:
            resolved.relative_to(base_dir.resolve())
        except ValueError:
            raise InvalidPathError(
                f"Path traversal detected: {path} is outside base directory {base_dir}"
            )

    return resolved


def dumps_state(state: HypergraphState, pretty_print: bool = True) -> str:
    """Serialize a snapshot to JSON text."""
    return json.dumps(state.to_dict(), indent=2 if pretty_print else None, ensure_ascii=False)


def loads_state(content: str) -> HypergraphState:
    """Parse and validate snapshot JSON text.

    Raises:
        InvalidSnapshotError: If the text is not JSON, has the wrong shape,
            or describes an inconsistent hypergraph
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise InvalidSnapshotError(f"Failed to parse JSON: {exc}") from exc
    except RecursionError as exc:
        raise InvalidSnapshotError("Failed to parse JSON: nesting too deep") from exc
    try:
        state = HypergraphState.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise InvalidSnapshotError(f"Malformed snapshot: {exc}") from exc
    errors = state.validate()
    if errors:
        raise InvalidSnapshotError(errors[0])
    return state


def default_filename(state: HypergraphState, now: datetime | None = None) -> str:
    """File name used when saving without an explicit path."""
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
    return f"hypergraph_step_{state.step_number}_{stamp}.json"


class PersistenceManager:
    """Saves, loads, lists and deletes snapshot files.

    Args:
        save_directory: Directory for default-named and quick saves
    """

    def __init__(self, save_directory: str | Path = DEFAULT_SAVE_DIRECTORY) -> None:
        self._save_directory = Path(save_directory)

    @property
    def save_directory(self) -> Path:
        return self._save_directory

    def save_state(
        self,
        state: HypergraphState,
        path: str | Path | None = None,
        config: SaveConfig | None = None,
    ) -> Path:
        """Write a snapshot to disk.

        Args:
            state: Snapshot to write
            path: Target file; defaults to a step-and-timestamp name in the
                save directory
            config: Directory creation, overwrite and formatting policy

        Returns:
            Resolved path of the written file

        Raises:
            InvalidPathError: If the path is invalid
            SnapshotExistsError: If the file exists and overwriting is disabled
            PersistenceIOError: If the file cannot be written
        """
        config = config or SaveConfig()
        target = path if path is not None else self._save_directory / default_filename(state)
        validated_path = _validate_path(target)

        if validated_path.exists() and not config.overwrite_existing:
            raise SnapshotExistsError(
                f"File already exists and overwrite is disabled: {validated_path}"
            )

        try:
            if config.create_directories:
                validated_path.parent.mkdir(parents=True, exist_ok=True)
            with open(validated_path, "w", encoding="utf-8") as f:
                f.write(dumps_state(state, config.pretty_print))
        except OSError as exc:
            raise PersistenceIOError(f"Failed to write {validated_path}: {exc}") from exc

        return validated_path

    def load_state(self, path: str | Path) -> HypergraphState:
        """Read and validate a snapshot file.

        Raises:
            InvalidPathError: If the path is invalid
            SnapshotNotFoundError: If the file does not exist
            InvalidSnapshotError: If the content is malformed or inconsistent
            PersistenceIOError: If the file cannot be read
        """
        validated_path = _validate_path(path)
        if not validated_path.is_file():
            raise SnapshotNotFoundError(f"File not found: {validated_path}")
        try:
            with open(validated_path, encoding="utf-8") as f:
                content = f.read()
        except UnicodeDecodeError as exc:
            raise InvalidSnapshotError(f"File is not valid UTF-8: {validated_path}") from exc
        except OSError as exc:
            raise PersistenceIOError(f"Failed to read {validated_path}: {exc}") from exc
        return loads_state(content)

    def list_saved(self) -> list[Path]:
        """List snapshot files in the save directory, most recent first."""
        if not self._save_directory.is_dir():
            return []
        files = [p for p in self._save_directory.iterdir() if p.is_file() and p.suffix == ".json"]
        return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)

    def delete_saved(self, path: str | Path) -> None:
        """Delete a snapshot file.

        Raises:
            SnapshotNotFoundError: If the file does not exist
            PersistenceIOError: If the file cannot be removed
        """
        validated_path = _validate_path(path)
        if not validated_path.is_file():
            raise SnapshotNotFoundError(f"File not found: {validated_path}")
        try:
            validated_path.unlink()
        except OSError as exc:
            raise PersistenceIOError(f"Failed to delete {validated_path}: {exc}") from exc

    def quick_save(self, state: HypergraphState, filename: str) -> Path:
        """Save under a bare file name inside the save directory."""
        path = _validate_path(self._save_directory / filename, base_dir=self._save_directory)
        return self.save_state(state, path)

    def quick_load(self, filename: str) -> HypergraphState:
        path = _validate_path(self._save_directory / filename, base_dir=self._save_directory)
        return self.load_state(path)
