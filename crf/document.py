"""
CRF Document Module

In-memory tree for a CRF record while it is being assembled.

A document is a tree of two node kinds:
- Container: named children, becomes a nested dict
- Leaf: a single value (string, or the boolean form-variant flag)

Paths are dot-delimited ("demographics.age"). Assigning a path creates any
missing containers on the way down and writes a leaf at the end:

    doc = CRFDocument()
    doc.assign("a.b.c", "v")
    doc.assign("a.b.d", "v2")
    doc.to_dict()   # {"a": {"b": {"c": "v", "d": "v2"}}}

Rules:
- An existing container is never replaced; siblings always coexist.
- A leaf at the final segment is overwritten.
- A leaf where a container is needed (or a container where a leaf is
  being written) means the mapping table is malformed and raises
  MappingConfigurationError.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .errors import MappingConfigurationError


@dataclass
class Leaf:
    """Terminal node holding one value."""
    value: Any


@dataclass
class Container:
    """Interior node; children keep insertion order."""
    children: dict[str, 'Node'] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = {}
        for key, node in self.children.items():
            if isinstance(node, Container):
                result[key] = node.to_dict()
            else:
                result[key] = node.value
        return result


Node = Union[Leaf, Container]


def split_path(path: str) -> list[str]:
    """
    Split a dotted path into segments.

    Raises:
        MappingConfigurationError: If the path is not a string or any segment is blank
    """
    if not isinstance(path, str) or not path.strip():
        raise MappingConfigurationError(
            f"Mapping path must be a non-empty string, got: {path!r}", path=path
        )

    segments = [segment.strip() for segment in path.split('.')]
    if any(not segment for segment in segments):
        raise MappingConfigurationError(
            f"Mapping path '{path}' contains an empty segment", path=path
        )
    return segments


class CRFDocument:
    """
    Mutable CRF tree built during one pipeline run.

    Call to_dict() to get the frozen, JSON-ready result.
    """

    def __init__(self):
        self.root = Container()

    def assign(self, path: str, value: Any) -> None:
        """
        Write a value at a dotted path, creating containers as needed.

        Raises:
            MappingConfigurationError: On a leaf/container collision
        """
        segments = split_path(path)
        current = self.root

        for depth, segment in enumerate(segments[:-1]):
            node = current.children.get(segment)
            if node is None:
                node = Container()
                current.children[segment] = node
            elif isinstance(node, Leaf):
                prefix = '.'.join(segments[:depth + 1])
                raise MappingConfigurationError(
                    f"Cannot write '{path}': '{prefix}' already holds a value",
                    path=path
                )
            current = node

        last = segments[-1]
        existing = current.children.get(last)
        if isinstance(existing, Container):
            raise MappingConfigurationError(
                f"Cannot write '{path}': it already holds nested fields",
                path=path
            )
        current.children[last] = Leaf(value)

    def get(self, path: str) -> Optional[Any]:
        """
        Read the value at a dotted path.

        Returns None for missing paths. A container is returned as a dict.
        """
        node: Node = self.root
        for segment in split_path(path):
            if not isinstance(node, Container) or segment not in node.children:
                return None
            node = node.children[segment]

        if isinstance(node, Container):
            return node.to_dict()
        return node.value

    def __contains__(self, path: str) -> bool:
        return self.get(path) is not None

    def __len__(self) -> int:
        return len(self.root.children)

    def to_dict(self) -> dict[str, Any]:
        """Freeze the tree into plain nested dicts."""
        return self.root.to_dict()


def assign_path(document: CRFDocument, path: str, value: Any) -> None:
    """Assign a value at a dotted path of a document."""
    document.assign(path, value)
