"""
shieldkit.tree
==============

Append-only, fixed-height Merkle tree over BN254 scalars, node-compatible
with the on-chain account tree (`fixed-merkle-tree` layout):

- level 0 holds the leaves in insertion order (= on-chain event index);
- a missing right sibling at level `l` is `zeros[l]`, where
  `zeros[0] = ZERO_VALUE` and `zeros[l+1] = hash2(zeros[l], zeros[l])`;
- nodes are combined as `hash2(left, right)` (Poseidon, two inputs).

Paths
-----
`path_indices[l]` is 1 when the node on the path at level `l` is a right
child. The circuits take the indices packed into a single integer
(`path_bits`, bit `l` = `path_indices[l]`), which equals the leaf index.

Only the leaf set, in order, determines the root: rebuilding a tree from
the full leaf list reproduces the root reached by incremental inserts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List

from shieldkit.crypto.field import bits_to_int, reduce
from shieldkit.crypto.poseidon import hash2
from shieldkit.errors import TreeFull

# keccak256("tornado") % SNARK_FIELD
ZERO_VALUE = 21663839004416932945382355908790599225266501822907911457504978515578255421292

HashFn = Callable[[int, int], int]


@dataclass(frozen=True)
class MerklePath:
    path_elements: List[int]
    path_indices: List[int]
    index: int

    @property
    def path_bits(self) -> int:
        return bits_to_int(self.path_indices)


@dataclass(frozen=True)
class TreeUpdate:
    """Root transition produced by inserting one leaf."""

    old_root: int
    new_root: int
    leaf: int
    path_elements: List[int]
    path_indices: int
    index: int


def zero_path(height: int) -> MerklePath:
    """All-zero path used for an account that is not in the tree yet."""
    return MerklePath([0] * height, [0] * height, 0)


class CommitmentTree:
    def __init__(
        self,
        height: int,
        leaves: Iterable[int] = (),
        zero_element: int = ZERO_VALUE,
        hash_fn: HashFn = hash2,
    ) -> None:
        if height < 1:
            raise ValueError("tree height must be >= 1")
        self.height = int(height)
        self.capacity = 1 << self.height
        self._hash = hash_fn
        self.zero_element = reduce(zero_element)
        self._zeros = [self.zero_element]
        for _ in range(self.height):
            z = self._zeros[-1]
            self._zeros.append(self._hash(z, z))
        self._layers: List[List[int]] = [[] for _ in range(self.height + 1)]
        self.bulk_insert(leaves)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._layers[0])

    @property
    def zeros(self) -> List[int]:
        return list(self._zeros)

    def root(self) -> int:
        top = self._layers[self.height]
        return top[0] if top else self._zeros[self.height]

    def elements(self) -> List[int]:
        return list(self._layers[0])

    def index_of(self, leaf: int) -> int:
        """Position of `leaf` (first occurrence) or -1."""
        try:
            return self._layers[0].index(reduce(leaf))
        except ValueError:
            return -1

    def path(self, index: int) -> MerklePath:
        if not 0 <= index < len(self):
            raise IndexError(f"index {index} out of bounds (size {len(self)})")
        elements: List[int] = []
        indices: List[int] = []
        i = index
        for level in range(self.height):
            indices.append(i & 1)
            sibling = i ^ 1
            layer = self._layers[level]
            elements.append(layer[sibling] if sibling < len(layer) else self._zeros[level])
            i >>= 1
        return MerklePath(elements, indices, index)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def insert(self, leaf: int) -> int:
        """Append `leaf`; returns its index."""
        if len(self) >= self.capacity:
            raise TreeFull(self.height)
        index = len(self)
        self._layers[0].append(reduce(leaf))
        self._rehash_from(index)
        return index

    def bulk_insert(self, leaves: Iterable[int]) -> None:
        items = [reduce(x) for x in leaves]
        if not items:
            return
        if len(self) + len(items) > self.capacity:
            raise TreeFull(self.height)
        start = len(self)
        self._layers[0].extend(items)
        # rebuild only the affected suffix of every layer
        lo = start
        for level in range(1, self.height + 1):
            lo >>= 1
            below = self._layers[level - 1]
            layer = self._layers[level]
            del layer[lo:]
            hi = (len(below) + 1) // 2
            for i in range(lo, hi):
                layer.append(self._node(level, i))

    def update(self, leaf: int) -> TreeUpdate:
        """Insert `leaf` and report the root transition with its inclusion path."""
        old_root = self.root()
        index = self.insert(leaf)
        p = self.path(index)
        return TreeUpdate(
            old_root=old_root,
            new_root=self.root(),
            leaf=reduce(leaf),
            path_elements=p.path_elements,
            path_indices=p.path_bits,
            index=index,
        )

    def copy(self) -> "CommitmentTree":
        dup = CommitmentTree.__new__(CommitmentTree)
        dup.height = self.height
        dup.capacity = self.capacity
        dup._hash = self._hash
        dup.zero_element = self.zero_element
        dup._zeros = list(self._zeros)
        dup._layers = [list(layer) for layer in self._layers]
        return dup

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _node(self, level: int, i: int) -> int:
        below = self._layers[level - 1]
        left = below[2 * i]
        right = below[2 * i + 1] if 2 * i + 1 < len(below) else self._zeros[level - 1]
        return self._hash(left, right)

    def _rehash_from(self, index: int) -> None:
        i = index
        for level in range(1, self.height + 1):
            i >>= 1
            value = self._node(level, i)
            layer = self._layers[level]
            if i < len(layer):
                layer[i] = value
            else:
                layer.append(value)


def verify_path(
    root: int,
    leaf: int,
    path: MerklePath,
    hash_fn: HashFn = hash2,
) -> bool:
    """Recompute the root from `leaf` along `path` and compare."""
    node = reduce(leaf)
    for sibling, is_right in zip(path.path_elements, path.path_indices):
        node = hash_fn(sibling, node) if is_right else hash_fn(node, sibling)
    return node == reduce(root)


__all__ = [
    "ZERO_VALUE",
    "MerklePath",
    "TreeUpdate",
    "CommitmentTree",
    "zero_path",
    "verify_path",
]
