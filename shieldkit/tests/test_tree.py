import pytest

from shieldkit.crypto.poseidon import hash2
from shieldkit.errors import TreeFull
from shieldkit.tree import ZERO_VALUE, CommitmentTree, verify_path, zero_path
from shieldkit.tests import configure_test_logging

configure_test_logging()


def test_empty_root_is_the_zero_chain():
    t = CommitmentTree(4)
    z = ZERO_VALUE
    for _ in range(4):
        z = hash2(z, z)
    assert t.root() == z
    assert t.zeros[0] == ZERO_VALUE
    assert len(t.zeros) == 5


def test_single_leaf_root_by_hand():
    t = CommitmentTree(2, [7])
    z0 = ZERO_VALUE
    z1 = hash2(z0, z0)
    assert t.root() == hash2(hash2(7, z0), z1)


def test_rebuild_equals_incremental():
    leaves = [11, 22, 33, 44, 55]
    incremental = CommitmentTree(5)
    for leaf in leaves:
        incremental.insert(leaf)
    rebuilt = CommitmentTree(5, leaves)
    assert rebuilt.root() == incremental.root()

    split = CommitmentTree(5, leaves[:2])
    split.bulk_insert(leaves[2:])
    assert split.root() == incremental.root()


def test_root_depends_on_order():
    assert CommitmentTree(4, [1, 2, 3]).root() != CommitmentTree(4, [2, 1, 3]).root()


def test_paths_verify_and_encode_the_index():
    leaves = [101, 202, 303, 404, 505, 606]
    t = CommitmentTree(4, leaves)
    for i, leaf in enumerate(leaves):
        p = t.path(i)
        assert p.path_bits == i
        assert len(p.path_elements) == 4
        assert verify_path(t.root(), leaf, p)
    assert not verify_path(t.root(), 999, t.path(0))
    with pytest.raises(IndexError):
        t.path(len(leaves))


def test_update_reports_the_transition():
    t = CommitmentTree(3, [1, 2, 3])
    old = t.root()
    up = t.update(4)
    assert up.old_root == old
    assert up.new_root == t.root()
    assert up.index == 3
    assert up.path_indices == 3
    assert up.leaf == 4


def test_capacity_is_enforced():
    t = CommitmentTree(2, [1, 2, 3, 4])
    with pytest.raises(TreeFull):
        t.insert(5)
    with pytest.raises(TreeFull):
        CommitmentTree(2, [1, 2, 3, 4, 5])


def test_copy_is_independent_and_index_of():
    t = CommitmentTree(3, [5, 6])
    c = t.copy()
    c.insert(7)
    assert len(t) == 2 and len(c) == 3
    assert t.index_of(6) == 1
    assert t.index_of(7) == -1


def test_zero_path_shape():
    p = zero_path(20)
    assert p.path_elements == [0] * 20
    assert p.path_bits == 0
