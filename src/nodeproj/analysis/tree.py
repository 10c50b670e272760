"""Project hierarchy nodes walked during reanalysis."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Final, Protocol

from nodeproj.utils.paths import path_key

log = logging.getLogger(__name__)

MANIFEST_FILE_NAME: Final[str] = "package.json"
SOURCE_EXTENSIONS: Final[tuple[str, ...]] = (".js",)

DEFAULT_IGNORE_DIRS: Final[tuple[str, ...]] = (
    ".git",
    ".hg",
    ".idea",
    ".svn",
    ".vs",
    ".vscode",
    "node_modules",
)


class NodeKind(StrEnum):
    """How the reanalysis walk treats a node."""

    MANIFEST = "manifest"
    SOURCE = "source"
    OTHER = "other"


class NodeRemovedError(LookupError):
    """Raised when a node left the hierarchy while it was being walked."""


class ProjectNode(Protocol):
    """A node in the host's project hierarchy."""

    @property
    def path(self) -> str:
        """Absolute path of the file or folder."""
        ...

    @property
    def kind(self) -> NodeKind:
        """Manifest, source file, or anything else."""
        ...

    @property
    def is_member(self) -> bool:
        """True for persisted project items, False for transient non-members."""
        ...

    @property
    def should_analyze(self) -> bool:
        """True when the analyzer should see this file."""
        ...

    def children(self) -> Iterable[ProjectNode]:
        """
        Return child nodes in display order.

        Raises
        ------
        NodeRemovedError
            When this node was removed from the hierarchy.
        """
        ...


def classify(path: str) -> NodeKind:
    """Return the node kind for a file path."""
    name = os.path.basename(path)
    if name.lower() == MANIFEST_FILE_NAME:
        return NodeKind.MANIFEST
    if os.path.splitext(name)[1].lower() in SOURCE_EXTENSIONS:
        return NodeKind.SOURCE
    return NodeKind.OTHER


@dataclass(eq=False)
class DiskNode:
    """In-memory hierarchy node backed by a filesystem path."""

    path: str
    kind: NodeKind = NodeKind.OTHER
    is_member: bool = True
    analyze: bool = True
    parent: DiskNode | None = field(default=None, repr=False)
    removed: bool = field(default=False, repr=False)
    _children: list[DiskNode] = field(default_factory=list, repr=False)

    @property
    def should_analyze(self) -> bool:
        return self.analyze

    def children(self) -> tuple[DiskNode, ...]:
        if self.removed:
            raise NodeRemovedError(self.path)
        return tuple(self._children)

    def add_child(self, child: DiskNode) -> DiskNode:
        """Attach ``child`` and return it."""
        child.parent = self
        self._children.append(child)
        return child

    def remove(self) -> None:
        """Detach this node (and implicitly its subtree) from the hierarchy."""
        self.removed = True
        for child in self._children:
            child.remove()
        if self.parent is not None and self in self.parent._children:  # noqa: SLF001
            self.parent._children.remove(self)  # noqa: SLF001


def build_disk_tree(
    project_root: Path,
    *,
    members: Collection[str] | None = None,
    include_non_member: Callable[[str], bool] | None = None,
    ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS,
) -> DiskNode:
    """
    Build a hierarchy mirroring the files under ``project_root``.

    Parameters
    ----------
    project_root
        Directory to mirror.
    members
        Path keys of persisted project items. When None every file is a member.
    include_non_member
        Decides whether a non-member source file is analyzed. Defaults to
        excluding all non-members.
    ignore_dirs
        Directory names that are not mirrored at all.

    Returns
    -------
    DiskNode
        Root node for ``project_root``.
    """
    ignore_set = set(ignore_dirs)
    member_keys = {path_key(member) for member in members} if members is not None else None
    root = DiskNode(path=str(project_root), kind=NodeKind.OTHER)

    def _populate(node: DiskNode) -> None:
        try:
            with os.scandir(node.path) as it:
                entries = sorted((entry.name, entry.is_dir(follow_symlinks=False)) for entry in it)
        except OSError as exc:
            log.debug("Skipping unreadable directory %s: %s", node.path, exc)
            return
        for name, is_dir in entries:
            child_path = os.path.join(node.path, name)
            if is_dir:
                if name in ignore_set:
                    continue
                _populate(node.add_child(DiskNode(path=child_path)))
                continue
            is_member = member_keys is None or path_key(child_path) in member_keys
            analyze = is_member or (
                include_non_member is not None and include_non_member(child_path)
            )
            node.add_child(
                DiskNode(
                    path=child_path,
                    kind=classify(child_path),
                    is_member=is_member,
                    analyze=analyze,
                )
            )

    _populate(root)
    return root
