import pytest

from shieldkit.crypto.blake256 import blake256
from shieldkit.crypto.field import SNARK_FIELD
from shieldkit.crypto.keccak import keccak256
from shieldkit.crypto.mimc import ROUNDS, mimc_feistel, mimc_sponge, mimc_sponge_hash, round_constants
from shieldkit.crypto.pedersen import (
    IDENTITY,
    add_points,
    circomlib_generator,
    generator,
    in_subgroup,
    mul_point,
    on_curve,
    pack_point,
    pedersen_hash,
    pedersen_point,
    register_generators,
    reset_generators,
    unpack_point,
)
from shieldkit.errors import EncodingError
from shieldkit.tests import configure_test_logging

configure_test_logging()

# circomlib babyjub Base8
BASE8 = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)

# circomlib pedersen.circom BASE[0]
PEDERSEN_BASE0 = (
    10457101036533406547632367118273992217979173478358440826365724437999023779287,
    19824078218392094440610104313265183977899662750282163392862422243483260492317,
)


def test_keccak256_known_vector():
    assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


# BLAKE-256 (SHA-3 submission test vectors)
def test_blake256_known_vectors():
    assert blake256(b"").hex() == "716f6e863f744b9ac22c97ec7b76ea5f5908bc5b2f67c61510bfc4751384ea7a"
    assert blake256(b"\x00").hex() == "0ce8d4ef4dd7cd8d62dfded9d4edb0a774ae6a41929a74da23109e8f11139c87"
    assert blake256(bytes(72)).hex() == "d419bad32d504fb7d44d460c42c5593fe544fa4c135dec31e21bd9abdcc22d41"


# ---------------------------------------------------------------------------
# MiMC
# ---------------------------------------------------------------------------


def test_mimc_round_constants_shape():
    cts = round_constants()
    assert len(cts) == ROUNDS
    assert cts[0] == 0 and cts[-1] == 0
    assert cts[1] == int.from_bytes(keccak256(keccak256(b"mimcsponge")), "big") % SNARK_FIELD
    assert all(0 <= c < SNARK_FIELD for c in cts)


def test_mimc_sponge_is_deterministic_and_sensitive():
    h = mimc_sponge_hash([1, 2])
    assert h == mimc_sponge_hash([1, 2])
    assert h != mimc_sponge_hash([2, 1])
    assert h != mimc_sponge_hash([1, 2], key=1)
    assert 0 <= h < SNARK_FIELD


def test_mimc_sponge_outputs_extend_first():
    outs = mimc_sponge([5, 6], outputs=3)
    assert len(outs) == 3
    assert outs[0] == mimc_sponge_hash([5, 6])
    with pytest.raises(ValueError):
        mimc_sponge([1], outputs=0)


def test_mimc_single_absorb_matches_feistel():
    xl, _ = mimc_feistel(9, 0)
    assert mimc_sponge_hash([9]) == xl


# ---------------------------------------------------------------------------
# Baby Jubjub / Pedersen
# ---------------------------------------------------------------------------


def test_base8_is_in_subgroup():
    assert on_curve(BASE8)
    assert in_subgroup(BASE8)
    assert add_points(BASE8, IDENTITY) == BASE8
    assert mul_point(BASE8, 0) == IDENTITY


def test_point_packing_roundtrip():
    for k in (1, 2, 3, 12345):
        p = mul_point(BASE8, k)
        assert unpack_point(pack_point(p)) == p
    with pytest.raises(EncodingError):
        unpack_point(b"\x00" * 31)


def test_first_generator_matches_circomlib():
    assert circomlib_generator(0) == PEDERSEN_BASE0
    assert generator(0) == PEDERSEN_BASE0


def test_generators_are_in_subgroup_and_distinct():
    gens = [generator(s) for s in range(4)]
    assert all(in_subgroup(g) for g in gens)
    assert len(set(gens)) == 4
    with pytest.raises(EncodingError):
        generator(-1)


def test_registered_generators_override_until_reset():
    data = bytes(range(31))
    before = pedersen_hash(data)
    try:
        register_generators([BASE8])
        assert generator(0) == BASE8
        assert generator(1) == circomlib_generator(1)
        assert pedersen_hash(data) != before
        with pytest.raises(EncodingError):
            register_generators([(1, 2)])
    finally:
        reset_generators()
    assert pedersen_hash(data) == before


def test_pedersen_hash_is_x_coordinate_and_sensitive():
    data = bytes(range(62))
    p = pedersen_point(data)
    assert on_curve(p)
    assert pedersen_hash(data) == p[0]
    assert pedersen_hash(data) != pedersen_hash(data[:-1] + b"\x01")
    with pytest.raises(EncodingError):
        pedersen_hash(b"")
