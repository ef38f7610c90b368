"""Board documents and the key/value store they are written to."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from mindweave.board import Board
from mindweave.hierarchy import HierarchyCycleError, check_acyclic
from mindweave.models import BoardConfig, Task, TaskStatus
from mindweave.palette import resolve_all

log = logging.getLogger(__name__)

VERSION = "1.0.0"
STORAGE_KEY = "mindweave-focus-data"
BACKUP_KEY = "mindweave-focus-backup"
SETTINGS_KEY = "mindweave-settings"
DEFAULT_HOME = ".mindweave"


class DocumentFormatError(ValueError):
    """An imported or stored document is not a usable board."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Dict-backed store; nothing survives the process."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class FileKeyValueStore:
    """One file per key inside a directory."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or os.environ.get("MINDWEAVE_HOME") or DEFAULT_HOME)

    def _path(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        tmp = self._path(key).with_suffix(".tmp")
        tmp.write_bytes(value)
        tmp.replace(self._path(key))

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


@dataclass(frozen=True)
class StorageInfo:
    has_data: bool
    has_backup: bool
    last_modified: str | None
    version: str | None
    total_tasks: int
    completed_tasks: int
    storage_size: int


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Board <-> document
# ---------------------------------------------------------------------------


def board_to_document(board: Board, created_at: str | None = None) -> dict:
    """Serialize *board* with freshly stamped ``lastModified`` and counts."""
    snap = board.snapshot()
    schemes = resolve_all(snap.tasks, board.palette, snap.forest)
    nodes = []
    for tid, task in snap.tasks.items():
        x, y = board.position(tid)
        nodes.append({
            "id": tid,
            "type": "task",
            "position": {"x": x, "y": y},
            "width": task.width,
            "height": task.height,
            "data": {
                "title": task.title,
                "status": task.status.value,
                "dueDate": task.due_date,
                "progress": task.progress,
                "collapsed": task.collapsed,
            },
        })
    edges = [
        {
            "id": e.id,
            "source": e.source,
            "target": e.target,
            "type": "smoothstep",
            "animated": True,
            "markerEnd": {"type": "arrowclosed"},
            "data": {"colorScheme": schemes.get(e.source)},
        }
        for e in snap.edges
    ]
    now = _now_iso()
    return {
        "nodes": nodes,
        "edges": edges,
        "tasks": {tid: t.to_dict() for tid, t in snap.tasks.items()},
        "version": VERSION,
        "lastModified": now,
        "metadata": {
            "totalTasks": len(snap.tasks),
            "completedTasks": sum(1 for t in snap.tasks.values() if t.status == TaskStatus.DONE),
            "createdAt": created_at or now,
        },
    }


def validate_document(raw: object) -> dict:
    if not isinstance(raw, dict):
        raise DocumentFormatError("Document must be a JSON object")
    missing = [k for k in ("nodes", "edges", "tasks") if k not in raw]
    if missing:
        raise DocumentFormatError(f"Invalid file format: missing {', '.join(missing)}")
    if not isinstance(raw["nodes"], list) or not isinstance(raw["edges"], list):
        raise DocumentFormatError('"nodes" and "edges" must be arrays')
    if not isinstance(raw["tasks"], dict):
        raise DocumentFormatError('"tasks" must be an object keyed by task id')
    return raw


def parse_document(text: str | bytes) -> dict:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise DocumentFormatError(f"Invalid JSON: {e}") from e
    return validate_document(raw)


def board_from_document(doc: dict, config: BoardConfig | None = None) -> Board:
    """Build a Board from a validated document.

    Parent pointers to missing tasks are cut. Edges are reconciled with the
    parent pointers: an edge whose target has no parent is adopted when it
    keeps the forest acyclic, any other disagreeing edge is dropped.
    """
    doc = validate_document(doc)
    tasks: dict[str, Task] = {}
    for tid, tdata in doc["tasks"].items():
        if not isinstance(tdata, dict):
            raise DocumentFormatError(f"Task {tid} is not an object")
        try:
            tasks[tid] = Task.from_dict(tid, tdata)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise DocumentFormatError(f"Task {tid} is malformed: {e}") from e

    for tid, task in list(tasks.items()):
        if task.parent_id is not None and task.parent_id not in tasks:
            log.warning("Task %s points at missing parent %s; making it a root", tid, task.parent_id)
            tasks[tid] = replace(task, parent_id=None)

    try:
        check_acyclic(tasks)
    except HierarchyCycleError as e:
        raise DocumentFormatError(str(e)) from e

    edge_ids: dict[str, str] = {}
    for raw_edge in doc["edges"]:
        if not isinstance(raw_edge, dict):
            raise DocumentFormatError("Edges must be objects")
        source, target = raw_edge.get("source"), raw_edge.get("target")
        if not isinstance(source, str) or not isinstance(target, str):
            raise DocumentFormatError(f"Edge {raw_edge.get('id')!r} needs string source and target ids")
        if source not in tasks or target not in tasks:
            log.warning("Dropping edge %s -> %s: unknown task", source, target)
            continue
        edge_id = str(raw_edge.get("id") or f"{source}->{target}")
        current = tasks[target].parent_id
        if current == source:
            edge_ids[target] = edge_id
            continue
        if current is None:
            candidate = dict(tasks)
            candidate[target] = replace(tasks[target], parent_id=source)
            try:
                check_acyclic(candidate)
            except HierarchyCycleError:
                log.warning("Dropping edge %s -> %s: it would close a cycle", source, target)
                continue
            tasks = candidate
            edge_ids[target] = edge_id
            continue
        log.warning("Dropping edge %s -> %s: %s already has parent %s", source, target, target, current)

    positions: dict[str, tuple[float, float]] = {}
    for node in doc["nodes"]:
        if not isinstance(node, dict):
            raise DocumentFormatError("Nodes must be objects")
        node_id = node.get("id")
        if not isinstance(node_id, str) or node_id not in tasks:
            continue
        pos = node.get("position") or {}
        if not isinstance(pos, dict):
            raise DocumentFormatError(f"Node {node_id} position must be an object with x and y")
        try:
            positions[node_id] = (float(pos.get("x", 0.0)), float(pos.get("y", 0.0)))
        except (TypeError, ValueError) as e:
            raise DocumentFormatError(f"Node {node_id} has a bad position: {e}") from e

    return Board(tasks=tasks, positions=positions, edge_ids=edge_ids, config=config)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class Store:
    """Reads and writes the board document through a key/value collaborator.

    One backup of the previously stored document is kept; loading falls back
    to it when the main document is unreadable.
    """

    def __init__(self, kv: KeyValueStore | None = None):
        self.kv = kv if kv is not None else FileKeyValueStore()
        self.created_at: str | None = None

    def _read(self, key: str) -> dict | None:
        raw = self.kv.get(key)
        if raw is None:
            return None
        return parse_document(raw)

    def load(self, config: BoardConfig | None = None) -> Board:
        """Return the stored board, the backup, or a default board. Never raises."""
        for key in (STORAGE_KEY, BACKUP_KEY):
            try:
                doc = self._read(key)
                if doc is None:
                    continue
                board = board_from_document(doc, config)
            except Exception as e:  # any unreadable document falls through to the next source
                log.warning("Could not load %s: %s", key, e)
                continue
            if key == BACKUP_KEY:
                log.warning("Loaded board from backup")
            self.created_at = (doc.get("metadata") or {}).get("createdAt")
            log.debug("Loaded %d task(s) (version %s)", len(board), doc.get("version", "legacy"))
            return board
        log.info("No stored board; starting with a default project")
        return Board.default(config)

    def save(self, board: Board) -> bool:
        """Write *board*, first copying the current document to the backup.

        Returns False (and logs) on failure; in-memory state is untouched.
        """
        try:
            doc = board_to_document(board, self.created_at)
            current = self.kv.get(STORAGE_KEY)
            if current is not None:
                self.kv.set(BACKUP_KEY, current)
            self.kv.set(STORAGE_KEY, json.dumps(doc, indent=2).encode("utf-8"))
        except Exception as e:  # storage collaborators raise arbitrary errors
            log.warning("Saving board failed: %s", e)
            return False
        self.created_at = doc["metadata"]["createdAt"]
        log.debug(
            "Saved board: %d task(s), %d completed",
            doc["metadata"]["totalTasks"],
            doc["metadata"]["completedTasks"],
        )
        return True

    def export_json(self, board: Board) -> str:
        return json.dumps(board_to_document(board, self.created_at), indent=2)

    def import_json(self, text: str | bytes, config: BoardConfig | None = None) -> Board:
        """Parse and validate a document; raises DocumentFormatError.

        Nothing is written; the caller swaps the board in and saves.
        """
        doc = parse_document(text)
        board = board_from_document(doc, config)
        self.created_at = (doc.get("metadata") or {}).get("createdAt")
        return board

    def load_config(self) -> BoardConfig:
        raw = self.kv.get(SETTINGS_KEY)
        if raw is None:
            return BoardConfig()
        try:
            return BoardConfig.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as e:
            log.warning("Ignoring unreadable settings: %s", e)
            return BoardConfig()

    def save_config(self, config: BoardConfig) -> None:
        self.kv.set(SETTINGS_KEY, json.dumps(config.to_dict(), indent=2).encode("utf-8"))

    def clear_all(self) -> None:
        self.kv.remove(STORAGE_KEY)
        self.kv.remove(BACKUP_KEY)
        self.created_at = None
        log.info("Removed stored board and backup")

    def info(self) -> StorageInfo:
        raw = self.kv.get(STORAGE_KEY)
        doc: dict | None = None
        if raw is not None:
            try:
                doc = parse_document(raw)
            except DocumentFormatError:
                doc = None
        backup = self.kv.get(BACKUP_KEY)
        meta = (doc or {}).get("metadata") or {}
        return StorageInfo(
            has_data=doc is not None,
            has_backup=backup is not None,
            last_modified=(doc or {}).get("lastModified"),
            version=(doc or {}).get("version"),
            total_tasks=meta.get("totalTasks", len((doc or {}).get("tasks", {}))),
            completed_tasks=meta.get("completedTasks", 0),
            storage_size=len(raw) if raw is not None else 0,
        )
