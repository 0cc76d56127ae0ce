"""
BK-tree over 64-bit perceptual hash codes under Hamming distance.

Nodes live in a flat arena (a list) and refer to their children by index, so
the whole tree is discarded in one go at the end of a run. Identical codes
share a node; every owner is kept.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Tuple

from ..exceptions import IndexInconsistencyError


def hamming_distance(a: int, b: int) -> int:
    """Number of differing bits between two codes."""
    return (a ^ b).bit_count()


@dataclass
class _Node:
    code: int
    owners: List[int] = field(default_factory=list)
    children: Dict[int, int] = field(default_factory=dict)  # edge distance -> arena index


class RangeQuery:
    """
    Result of BKTree.query_within: iterates lazily, and every new iteration
    walks the tree again from the root.
    """

    def __init__(self, tree: "BKTree", code: int, max_distance: int):
        self._tree = tree
        self.code = code
        self.max_distance = max_distance

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        return self._tree._walk(self.code, self.max_distance)


class BKTree:
    def __init__(self):
        self._nodes: List[_Node] = []
        self._size = 0
        self._queried = False

    @classmethod
    def build(cls, entries: Iterable[Tuple[int, int]]) -> "BKTree":
        """Builds a complete index from (code, owner_id) pairs."""
        tree = cls()
        for code, owner_id in entries:
            tree.insert(code, owner_id)
        return tree

    def __len__(self) -> int:
        return self._size

    def insert(self, code: int, owner_id: int):
        if self._queried:
            raise IndexInconsistencyError(
                "BK-tree insert after queries started; build the index fully before querying"
            )

        self._size += 1
        if not self._nodes:
            self._nodes.append(_Node(code, [owner_id]))
            return

        idx = 0
        while True:
            node = self._nodes[idx]
            dist = hamming_distance(code, node.code)
            if dist == 0:
                node.owners.append(owner_id)
                return
            child = node.children.get(dist)
            if child is None:
                node.children[dist] = len(self._nodes)
                self._nodes.append(_Node(code, [owner_id]))
                return
            idx = child

    def query_within(self, code: int, max_distance: int) -> RangeQuery:
        """All (owner_id, distance) entries within max_distance bits of code."""
        self._queried = True
        return RangeQuery(self, code, max_distance)

    def _walk(self, code: int, max_distance: int) -> Iterator[Tuple[int, int]]:
        if not self._nodes:
            return
        stack = [0]
        while stack:
            node = self._nodes[stack.pop()]
            dist = hamming_distance(code, node.code)
            if dist <= max_distance:
                for owner_id in node.owners:
                    yield owner_id, dist

            # Triangle inequality: only edges in [dist - k, dist + k] can hold matches
            for edge, child in node.children.items():
                if abs(dist - edge) <= max_distance:
                    stack.append(child)
