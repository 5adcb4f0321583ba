import json

import pytest

from shieldkit.crypto.pedersen import pedersen_hash
from shieldkit.deployments import DEPLOYMENTS, ProvingSystem, find_pool, load_deployments_json
from shieldkit.errors import ConfigError, EncodingError, PoolNotFound
from shieldkit.notes import create_deposit, generate_note, is_valid_note, parse_note
from shieldkit.tests import configure_test_logging

configure_test_logging()


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


def test_note_format_and_parse():
    note = generate_note("celo", "100", 42220, nullifier=1, secret=2)
    assert note.startswith("poof-celo-100-42220-0x")
    assert note.endswith(("01" + "00" * 30) + ("02" + "00" * 30))
    assert is_valid_note(note)

    parsed = parse_note(note)
    assert parsed.currency == "celo"
    assert parsed.amount == "100"
    assert parsed.net_id == 42220
    assert parsed.deposit.nullifier == 1
    assert parsed.deposit.secret == 2


def test_deposit_hashes():
    d = create_deposit(nullifier=5, secret=6)
    assert len(d.preimage) == 62
    assert d.commitment == pedersen_hash(d.preimage)
    assert d.nullifier_hash == pedersen_hash(d.preimage[:31])
    assert d.commitment_hex.startswith("0x") and len(d.commitment_hex) == 66


def test_random_notes_differ_and_invalid_notes_fail():
    assert generate_note("cusd", "1", 1) != generate_note("cusd", "1", 1)
    assert not is_valid_note("poof-celo-1-1-0x1234")
    with pytest.raises(EncodingError):
        parse_note("not a note")


# ---------------------------------------------------------------------------
# Deployments
# ---------------------------------------------------------------------------


def test_pool_lookup_matches_symbol_or_psymbol():
    v2 = find_pool("celo_v2", 42220)
    assert v2.proving_system is ProvingSystem.GROTH16
    assert v2.generation == 2 and v2.merkle_tree_height == 24
    assert find_pool("PCELO_V2", 42220) is v2

    v1 = find_pool("CELO_v1", 42220)
    assert v1.generation == 1 and v1.merkle_tree_height == 20

    with pytest.raises(PoolNotFound):
        find_pool("DOGE", 42220)
    with pytest.raises(PoolNotFound):
        find_pool("CELO_v2", 999999)


def test_every_descriptor_is_consistent():
    for chain_id, pools in DEPLOYMENTS.items():
        for pool in pools:
            assert pool.pool_address.startswith("0x")
            expected = 24 if pool.proving_system is ProvingSystem.GROTH16 else 20
            assert pool.merkle_tree_height == expected, (chain_id, pool.symbol)


def test_load_deployments_json(tmp_path):
    path = tmp_path / "deployments.json"
    path.write_text(
        json.dumps(
            {
                "31337": [
                    {
                        "poolAddress": "0x" + "12" * 20,
                        "symbol": "ETH_v2",
                        "pSymbol": "pETH_v2",
                        "decimals": 18,
                        "creationBlock": 1,
                        "provingSystem": "GROTH16",
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    table = load_deployments_json(path)
    pool = find_pool("eth_v2", 31337, table)
    assert pool.merkle_tree_height == 24
    assert pool.creation_block == 1

    path.write_text(json.dumps({"1": [{"symbol": "X", "provingSystem": "stark"}]}), encoding="utf-8")
    with pytest.raises(ConfigError):
        load_deployments_json(path)
