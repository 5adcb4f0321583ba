"""
Field and hash utilities: BN254 scalars, Poseidon / MiMC / Pedersen,
account envelopes, bound-argument hashing and relayer fees.
"""

from shieldkit.crypto.binding import (
    OperationKind,
    bind_arguments,
    deposit_proof_hash,
    encode_ext_data,
)
from shieldkit.crypto.envelope import (
    EncryptedMessage,
    decrypt_message,
    encrypt_message,
    encryption_public_key,
    pack_envelope,
    unpack_envelope,
)
from shieldkit.crypto.fees import calculate_fee, with_fee_buffer
from shieldkit.crypto.field import SNARK_FIELD, fixed_hex, random_scalar, to_int
from shieldkit.crypto.keccak import keccak256
from shieldkit.crypto.mimc import mimc_sponge_hash
from shieldkit.crypto.pedersen import pedersen_hash
from shieldkit.crypto.poseidon import hash2, poseidon_hash

__all__ = [
    "SNARK_FIELD",
    "to_int",
    "fixed_hex",
    "random_scalar",
    "keccak256",
    "poseidon_hash",
    "hash2",
    "mimc_sponge_hash",
    "pedersen_hash",
    "EncryptedMessage",
    "encrypt_message",
    "decrypt_message",
    "encryption_public_key",
    "pack_envelope",
    "unpack_envelope",
    "OperationKind",
    "bind_arguments",
    "deposit_proof_hash",
    "encode_ext_data",
    "calculate_fee",
    "with_fee_buffer",
]
