"""Cryptographic glue for building ESNIKeys and ECHOConfig values.

Key generation, the SHA-256 digest and PEM handling are all implemented by
the python cryptography library and pyhpke; this module just wraps them
with the interface and error types the builder expects, and computes the
ESNIKeys checksum.
"""
from abc import ABC, abstractmethod
from random import Random
from secrets import SystemRandom

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives.hashes import Hash, SHA256, HashAlgorithm
from cryptography.hazmat.primitives.serialization import Encoding, PrivateFormat, NoEncryption, load_pem_private_key
from cryptography.exceptions import UnsupportedAlgorithm
import pyhpke

from esni_common import *

X25519_KEY_LENGTH = 32
CHECKSUM_OFFSET = 2
CHECKSUM_LENGTH = 4


@dataclass(frozen=True)
class Keypair:
    public: bytes
    private: bytes # PEM encoding


class KexAlg(ABC):
    @abstractmethod
    def gen_keypair(self, rgen: Random) -> Keypair: ...

    @abstractmethod
    def load_keypair(self, private_pem: bytes) -> Keypair: ...


class _X25519Kex(KexAlg):
    """X25519 key shares, as used directly by ESNIKeys."""

    def _keypair(self, prikey: X25519PrivateKey) -> Keypair:
        return Keypair(
            public = prikey.public_key().public_bytes_raw(),
            private = x25519_private_pem(prikey),
        )

    @override
    def gen_keypair(self, rgen: Random) -> Keypair:
        try:
            prikey = X25519PrivateKey.from_private_bytes(rgen.randbytes(X25519_KEY_LENGTH))
        except (ValueError, UnsupportedAlgorithm) as e:
            raise KeyGenerationFailed(f"X25519 key generation failed: {e}") from e
        return self._keypair(prikey)

    @override
    def load_keypair(self, private_pem: bytes) -> Keypair:
        try:
            prikey = load_pem_private_key(private_pem, None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyGenerationFailed("Can't read private key") from e
        if not isinstance(prikey, X25519PrivateKey):
            raise KeyGenerationFailed(f"expected an X25519 private key, got {type(prikey).__name__}")
        return self._keypair(prikey)


class _PyhpkeKem(KexAlg):
    """HPKE KEM key pairs, as used by ECHOConfig."""

    def __init__(self,
                 kem_id: pyhpke.KEMId = pyhpke.KEMId.DHKEM_X25519_HKDF_SHA256,
                 kdf_id: pyhpke.KDFId = pyhpke.KDFId.HKDF_SHA256,
                 aead_id: pyhpke.AEADId = pyhpke.AEADId.AES128_GCM) -> None:
        self._kem = pyhpke.CipherSuite.new(kem_id, kdf_id, aead_id).kem

    @override
    def gen_keypair(self, rgen: Random) -> Keypair:
        try:
            keypair = self._kem.derive_key_pair(rgen.randbytes(64))
            raw_private = keypair.private_key.to_private_bytes()
            public = keypair.public_key.to_public_bytes()
        except (ValueError, pyhpke.PyHPKEError) as e:
            raise KeyGenerationFailed(f"HPKE key generation failed: {e}") from e
        return Keypair(
            public = public,
            private = x25519_private_pem(X25519PrivateKey.from_private_bytes(raw_private)),
        )

    @override
    def load_keypair(self, private_pem: bytes) -> Keypair:
        return _X25519Kex().load_keypair(private_pem)


def get_kex_alg(hpke: bool = False) -> KexAlg:
    """X25519 for ESNIKeys, or the HPKE KEM for ECHOConfig.
    The returned object kex will have:
        kex.gen_keypair(rgen) -> Keypair
        kex.load_keypair(private_pem) -> Keypair
    """
    if hpke:
        return _PyhpkeKem()
    return _X25519Kex()

def gen_x25519_keypair(rgen: Random|None = None) -> Keypair:
    if rgen is None:
        rgen = SystemRandom()
    return get_kex_alg().gen_keypair(rgen)

def gen_hpke_keypair(rgen: Random|None = None) -> Keypair:
    if rgen is None:
        rgen = SystemRandom()
    return get_kex_alg(hpke=True).gen_keypair(rgen)

def load_x25519_keypair(private_pem: bytes) -> Keypair:
    return get_kex_alg().load_keypair(private_pem)

def x25519_private_pem(prikey: X25519PrivateKey) -> bytes:
    return prikey.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())


def digest(data: bytes, hash_alg: HashAlgorithm|None = None) -> bytes:
    if hash_alg is None:
        hash_alg = SHA256()
    try:
        hasher = Hash(hash_alg)
        hasher.update(data)
        return hasher.finalize()
    except (UnsupportedAlgorithm, TypeError) as e:
        raise DigestUnavailable(f"can't compute digest with {hash_alg!r}") from e

def esni_checksum(buf: bytes, offset: int = CHECKSUM_OFFSET) -> bytes:
    """First 4 bytes of SHA256 over buf with the checksum field zeroed.

    Works purely on the offset, with no other knowledge of the encoding.
    """
    if len(buf) < offset + CHECKSUM_LENGTH:
        raise ValueError(f"buffer of {len(buf)} bytes has no room for a checksum at {offset}")
    zeroed = bytearray(buf)
    zeroed[offset:offset+CHECKSUM_LENGTH] = bytes(CHECKSUM_LENGTH)
    return digest(bytes(zeroed))[:CHECKSUM_LENGTH]

def patch_checksum(buf: bytearray, offset: int = CHECKSUM_OFFSET) -> bytes:
    """Computes the checksum and writes it into buf in place."""
    cksum = esni_checksum(buf, offset)
    buf[offset:offset+CHECKSUM_LENGTH] = cksum
    return cksum

def verify_checksum(buf: bytes, offset: int = CHECKSUM_OFFSET) -> bool:
    return esni_checksum(buf, offset) == buf[offset:offset+CHECKSUM_LENGTH]
