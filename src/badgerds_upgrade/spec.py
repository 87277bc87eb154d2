"""Datastore spec parsing and badger path resolution.

The repository's datastore spec is a JSON tree describing how datastores
are composed:

    {"type": "mount", "mounts": [
        {"type": "measure", "child": {"type": "badgerds", "path": "badgerds"}},
        {"type": "measure", "child": {"type": "flatfs", "path": "blocks"}}
    ]}

Node types:
    - mount: fans out to the nodes in ``mounts``, in order
    - measure: transparent wrapper around ``child``
    - badgerds: a badger datastore at ``path``; the only kind upgraded here
    - flatfs, levelds: valid leaves this tool leaves alone

Each node type is a Pydantic model and the tree is validated as a
discriminated union on ``type``, so a bad node anywhere rejects the whole
spec and no partial path list is ever produced.
"""

import logging
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, TypeAdapter, ValidationError

from badgerds_upgrade.constants import (
    BADGER_TYPE,
    FLATFS_TYPE,
    LEVELDB_TYPE,
    MEASURE_TYPE,
    MOUNT_TYPE,
    SPEC_FILE,
)
from badgerds_upgrade.errors import RepoReadError, SpecParseError
from badgerds_upgrade.reporter import Reporter

logger = logging.getLogger(__name__)

__all__ = [
    "MountSpec",
    "MeasureSpec",
    "BadgerSpec",
    "FlatfsSpec",
    "LevelSpec",
    "SpecNode",
    "parse_spec",
    "load_spec",
    "resolve_store_paths",
]

_NODE_TYPES = frozenset({MOUNT_TYPE, MEASURE_TYPE, BADGER_TYPE, FLATFS_TYPE, LEVELDB_TYPE})


class _SpecModel(BaseModel):
    # Real specs carry extra keys (prefix, mountpoint, sync, ...) we don't need
    model_config = ConfigDict(extra="ignore", frozen=True)

    def store_paths(self) -> list[str]:
        return []


class MountSpec(_SpecModel):
    """Fan-out over child datastores."""

    type: Literal["mount"]
    mounts: list["SpecNode"]

    def store_paths(self) -> list[str]:
        paths: list[str] = []
        for mount in self.mounts:
            paths.extend(mount.store_paths())
        return paths


class MeasureSpec(_SpecModel):
    """Metrics wrapper; resolves to its child."""

    type: Literal["measure"]
    child: "SpecNode"

    def store_paths(self) -> list[str]:
        return self.child.store_paths()


class BadgerSpec(_SpecModel):
    """Badger datastore leaf."""

    type: Literal["badgerds"]
    path: StrictStr

    def store_paths(self) -> list[str]:
        return [self.path]


class FlatfsSpec(_SpecModel):
    type: Literal["flatfs"]


class LevelSpec(_SpecModel):
    type: Literal["levelds"]


SpecNode = Annotated[
    Union[MountSpec, MeasureSpec, BadgerSpec, FlatfsSpec, LevelSpec],
    Field(discriminator="type"),
]

MountSpec.model_rebuild()
MeasureSpec.model_rebuild()

_spec_adapter: TypeAdapter[SpecNode] = TypeAdapter(SpecNode)


def _parse_error(exc: ValidationError) -> SpecParseError:
    """Turn the first validation error into a SpecParseError naming its field."""
    error = exc.errors()[0]
    # Discriminated unions put the tag into the location; drop it
    loc = [str(part) for part in error["loc"] if part not in _NODE_TYPES]
    if error["type"] in ("union_tag_not_found", "union_tag_invalid"):
        loc.append("type")
    field = ".".join(loc) or "<root>"
    return SpecParseError(field, error["msg"])


def parse_spec(data: Union[str, bytes, dict]) -> SpecNode:
    """Validate a datastore spec.

    Args:
        data: Raw JSON text/bytes, or an already decoded object.

    Returns:
        The root SpecNode.

    Raises:
        SpecParseError: If the JSON is invalid or any node is malformed.
    """
    try:
        if isinstance(data, (str, bytes)):
            return _spec_adapter.validate_json(data)
        return _spec_adapter.validate_python(data)
    except ValidationError as e:
        raise _parse_error(e) from e


def load_spec(repo_root: Path) -> SpecNode:
    """Read and validate the datastore spec from the repository root.

    Raises:
        RepoReadError: If the spec file cannot be read.
        SpecParseError: If it is not a valid spec.
    """
    path = Path(repo_root) / SPEC_FILE
    try:
        data = path.read_bytes()
    except OSError as e:
        raise RepoReadError(path, str(e)) from e
    return parse_spec(data)


def resolve_store_paths(repo_root: Path, reporter: Reporter) -> list[str]:
    """List the badger datastore paths in the repository's spec.

    Paths are returned as written in the spec, in depth-first order.
    A path listed twice is returned twice.
    """
    paths = load_spec(repo_root).store_paths()
    for path in paths:
        reporter.info(f"Badger instance at {path}")
    if not paths:
        reporter.info("No badger datastores in spec, nothing to upgrade")
    return paths
