"""Builds ESNIKeys (drafts -02/-03) and ECHOConfig (draft -04) structures.

A build happens in two phases. An UnfinalizedConfig appends fields in the
order the version's layout fixes, leaving the checksum zeroed. finalize()
patches the checksum (once, last) and hands back a FinalizedConfig, which
only gets read from then on.

Here's a hexdump of a draft-02 (0xff01) value:

    00000000  ff 01 c7 04 13 a8 00 24  00 1d 00 20 e1 84 9f 8d
    00000010  2c 89 3c da f5 cf 71 7c  2a ac c1 34 19 cc 7a 38
    00000020  a6 d2 62 59 68 f9 ab 89  ad d7 b2 27 00 02 13 01
    00000030  01 04 00 00 00 00 5b da  50 10 00 00 00 00 5b e2
    00000040  39 10 00 00

and the TLS presentation syntax:

    struct {
        uint16 version;
        uint8 checksum[4];
        opaque public_name<1..2^16-1>;      // 0xff02 only
        KeyShareEntry keys<4..2^16-1>;
        CipherSuite cipher_suites<2..2^16-2>;
        uint16 padded_length;
        uint64 not_before;
        uint64 not_after;
        Extension extensions<0..2^16-1>;
    } ESNIKeys;

ECHOConfig (0xff03) drops the checksum and validity window and puts a KEM
id after the keys.
"""

from enum import IntEnum, Enum
import time

from esni_common import *
from esni_crypto import patch_checksum, verify_checksum, CHECKSUM_LENGTH, X25519_KEY_LENGTH
from esni_addrs import AddressSetExtension, ADDRESS_SET_TYPE
from wire import TlvWriter, LimitReader, UnpackError, Extension
from util import hexdump

X25519_GROUP = 0x001d
TLS_AES_128_GCM_SHA256 = 0x1301
PADDED_LENGTH = 0x0104 # 260, same as CF
# X25519 KEM id as put on the wire by the draft-04 tools
ECHO_KEM_ID = 0x0200

KEY_SHARE_PREFIX = (
    (X25519_KEY_LENGTH + 4).to_bytes(2)
    + X25519_GROUP.to_bytes(2)
    + X25519_KEY_LENGTH.to_bytes(2)
)


class NameRule(Enum):
    FORBIDDEN = 'forbidden'
    REQUIRED  = 'required'
    OPTIONAL  = 'optional'


@dataclass(frozen=True)
class Layout:
    label: str
    name: NameRule
    checksum: bool
    validity: bool
    kem_id: bool
    address_set: bool
    capacity: int


class Version(IntEnum):
    ESNI_DRAFT02 = 0xff01
    ESNI_DRAFT03 = 0xff02
    ECHO_DRAFT04 = 0xff03

    @property
    def layout(self) -> Layout:
        match self:
            case Version.ESNI_DRAFT02:
                return Layout('ESNIKeys', NameRule.FORBIDDEN, checksum=True, validity=True,
                              kem_id=False, address_set=False, capacity=MAX_ESNIKEYS_BUFLEN)
            case Version.ESNI_DRAFT03:
                return Layout('ESNIKeys', NameRule.REQUIRED, checksum=True, validity=True,
                              kem_id=False, address_set=True, capacity=MAX_ESNIKEYS_BUFLEN)
            case Version.ECHO_DRAFT04:
                return Layout('ECHOConfig', NameRule.OPTIONAL, checksum=False, validity=False,
                              kem_id=True, address_set=True, capacity=MAX_ECHOCONFIGS_BUFLEN)

    @property
    def is_esni(self) -> bool:
        return self.layout.checksum

    def __str__(self) -> str:
        return f'0x{self.value:04x}'

ESNI_VERSIONS = (Version.ESNI_DRAFT02, Version.ESNI_DRAFT03)
ECHO_VERSIONS = (Version.ECHO_DRAFT04,)


def get_version(value: int, allowed: Iterable[Version] = tuple(Version), hint: str = '') -> Version:
    """Maps a numeric version to a Version, if it's one of the allowed ones."""
    try:
        version = Version(value)
    except ValueError:
        raise UnsupportedVersion(value, hint) from None
    if version not in tuple(allowed):
        raise UnsupportedVersion(value, hint)
    return version


def canonical_name(name: str|None) -> str|None:
    """Strips one trailing dot, as zone files and the SNI don't want it."""
    if name is not None and name.endswith('.'):
        return name[:-1]
    return name

def validity_window(now: int|float|None = None, duration: int = DEFAULT_DURATION) -> tuple[int, int]:
    """Returns (not_before, not_after) starting just before now."""
    if duration <= 0:
        raise InvalidDuration(f"Can't have negative duration ({duration})")
    if duration >= MAX_DURATION:
        raise InvalidDuration(f"Can't have >10 years duration ({duration}>{MAX_DURATION})")
    if duration < MIN_DURATION:
        raise InvalidDuration(f"Can't have <1 hour duration ({duration}<{MIN_DURATION})")
    if now is None:
        now = time.time()
    not_before = int(now) - 1
    return not_before, not_before + duration


@dataclass(frozen=True)
class FinalizedConfig:
    version: Version
    raw: bytes

    @property
    def checksum(self) -> bytes|None:
        if self.version.layout.checksum:
            return self.raw[2:2+CHECKSUM_LENGTH]
        return None

    def __bytes__(self) -> bytes:
        return self.raw

    def __len__(self) -> int:
        return len(self.raw)


class UnfinalizedConfig:
    """Field-by-field builder for one structure; see finalize()."""

    def __init__(self, version: Version) -> None:
        self.version = version
        self.layout = version.layout
        self._out = TlvWriter(self.layout.capacity)
        self._finalized = False

    def _check_open(self) -> None:
        if self._finalized:
            raise EsniError(f"{self.layout.label} {self.version} is already finalized")

    def add_version(self) -> None:
        self._check_open()
        self._out.append_u16(self.version)

    def add_checksum_placeholder(self) -> None:
        self._check_open()
        self._out.append_zeros(CHECKSUM_LENGTH)

    def add_public_name(self, name: bytes) -> None:
        self._check_open()
        self._out.length_prefixed(name)

    def add_key_share(self, public_key: bytes) -> None:
        self._check_open()
        if len(public_key) != X25519_KEY_LENGTH:
            raise KeyLengthError(f"X25519 public key must be {X25519_KEY_LENGTH} bytes, got {len(public_key)}")
        self._out.append_u16(X25519_KEY_LENGTH + 4)
        self._out.append_u16(X25519_GROUP)
        self._out.length_prefixed(public_key)

    def add_kem_id(self) -> None:
        self._check_open()
        self._out.append_u16(ECHO_KEM_ID)

    def add_cipher_suites(self) -> None:
        self._check_open()
        self._out.length_prefixed(TLS_AES_128_GCM_SHA256.to_bytes(2))

    def add_padded_length(self) -> None:
        self._check_open()
        self._out.append_u16(PADDED_LENGTH)

    def add_timestamp(self, when: int) -> None:
        # top 4 octets of time are always zero
        self._check_open()
        self._out.append_zeros(4)
        self._out.append_u32(when & 0xffffffff)

    def add_extensions(self, extension: Extension|None) -> None:
        self._check_open()
        if extension is None:
            self._out.append_u16(0) # no extensions
        else:
            self._out.append_bytes(extension.encode())

    def finalize(self) -> FinalizedConfig:
        """Patches in the checksum, if this layout has one, and freezes."""
        self._check_open()
        buf = self._out.getvalue()
        logger.debug(f"{self.layout.label} before checksum ({len(buf)}):\n{hexdump(buf)}")
        if self.layout.checksum:
            patch_checksum(buf)
            logger.debug(f"{self.layout.label} with checksum ({len(buf)}):\n{hexdump(buf)}")
        self._finalized = True
        return FinalizedConfig(self.version, bytes(buf))


def _check_name(version: Version, name: str|None) -> bytes|None:
    match version.layout.name:
        case NameRule.FORBIDDEN:
            if name:
                raise NameNotAllowed(f"Version {version} doesn't support Cover name")
            return None
        case NameRule.REQUIRED:
            if name is None:
                raise NameRequired(f"{version} requires you to specify a cover/public-name")
        case NameRule.OPTIONAL:
            if not name:
                return None
    encoded = name.encode('utf8')
    if len(encoded) > MAX_ESNI_COVER_NAME:
        raise NameTooLong(f"Cover name too long ({len(encoded)}), max is {MAX_ESNI_COVER_NAME}")
    if version == Version.ESNI_DRAFT03:
        # length is checked on the name as given, before the dot goes
        encoded = canonical_name(name).encode('utf8')
    return encoded

def build_config(
    version: Version|int,
    public_key: bytes,
    name: str|None = None,
    extension: Extension|None = None,
    not_before: int|None = None,
    not_after: int|None = None,
) -> FinalizedConfig:
    """Builds the structure for version, returning it finalized.

    For the ESNIKeys versions the validity window defaults to one week
    starting now.
    """
    if not isinstance(version, Version):
        version = get_version(version)
    layout = version.layout
    encoded_name = _check_name(version, name)
    if isinstance(extension, AddressSetExtension) and not layout.address_set:
        raise AddressSetNotAllowed(f"Version {version} doesn't support AddressSet")
    if layout.validity and (not_before is None or not_after is None):
        not_before, not_after = validity_window()

    cfg = UnfinalizedConfig(version)
    cfg.add_version()
    match version:
        case Version.ESNI_DRAFT02:
            cfg.add_checksum_placeholder()
            cfg.add_key_share(public_key)
            cfg.add_cipher_suites()
            cfg.add_padded_length()
            cfg.add_timestamp(not_before)
            cfg.add_timestamp(not_after)
        case Version.ESNI_DRAFT03:
            cfg.add_checksum_placeholder()
            cfg.add_public_name(encoded_name)
            cfg.add_key_share(public_key)
            cfg.add_cipher_suites()
            cfg.add_padded_length()
            cfg.add_timestamp(not_before)
            cfg.add_timestamp(not_after)
        case Version.ECHO_DRAFT04:
            if encoded_name is not None:
                cfg.add_public_name(encoded_name)
            cfg.add_key_share(public_key)
            cfg.add_kem_id()
            cfg.add_cipher_suites()
            cfg.add_padded_length()
    cfg.add_extensions(extension)
    return cfg.finalize()


@dataclass(frozen=True)
class EsniKeysInfo:
    """Everything read back out of an ESNIKeys or ECHOConfig value."""
    version: Version
    checksum: bytes|None
    public_name: str|None
    group: int
    public_key: bytes
    kem_id: int|None
    cipher_suites: tuple[int, ...]
    padded_length: int
    not_before: int|None
    not_after: int|None
    extension: Extension|None


def _has_name_field(rdr: LimitReader, raw: bytes) -> bool:
    # an absent name leaves the key share list header next; no host name
    # starts with 0x00 0x1d
    start = len(rdr.got)
    return raw[start:start+len(KEY_SHARE_PREFIX)] != KEY_SHARE_PREFIX

def _read_extension(rdr: LimitReader) -> Extension|None:
    outer = rdr.read_u16()
    if outer == 0 and rdr.limit == 0:
        return None
    typ = rdr.read_u16()
    data = rdr.read_prefixed()
    if typ == ADDRESS_SET_TYPE:
        ext: Extension = AddressSetExtension(data=data)
    else:
        ext = Extension(typ=typ, data=data)
    if ext.encode()[:2] != outer.to_bytes(2):
        raise UnpackError(bytes(rdr.got), f"extensions length {outer} doesn't match extension of {len(data)} bytes")
    return ext

def decode_config(raw: bytes) -> EsniKeysInfo:
    """Parses any of the supported layouts, checking the ESNIKeys checksum."""
    rdr = LimitReader.from_raw(raw)
    value = rdr.read_u16()
    try:
        version = Version(value)
    except ValueError:
        raise UnsupportedVersion(value) from None
    layout = version.layout

    checksum = None
    if layout.checksum:
        checksum = rdr.read(CHECKSUM_LENGTH)
        if not verify_checksum(raw):
            raise UnpackError(raw, f"checksum {checksum.hex()} doesn't match contents")

    public_name = None
    if layout.name == NameRule.REQUIRED or (
            layout.name == NameRule.OPTIONAL and _has_name_field(rdr, raw)):
        public_name = rdr.read_prefixed().decode('utf8')

    keys = LimitReader.from_raw(rdr.read_prefixed())
    group = keys.read_u16()
    public_key = keys.read_prefixed()
    keys.assert_used_up()

    kem_id = rdr.read_u16() if layout.kem_id else None

    suites_raw = rdr.read_prefixed()
    if len(suites_raw) % 2:
        raise UnpackError(raw, f"odd cipher suites length {len(suites_raw)}")
    cipher_suites = tuple(int.from_bytes(suites_raw[i:i+2]) for i in range(0, len(suites_raw), 2))
    padded_length = rdr.read_u16()

    not_before = not_after = None
    if layout.validity:
        not_before = rdr.read_u64()
        not_after = rdr.read_u64()

    extension = _read_extension(rdr)
    rdr.assert_used_up()

    return EsniKeysInfo(
        version = version,
        checksum = checksum,
        public_name = public_name,
        group = group,
        public_key = public_key,
        kem_id = kem_id,
        cipher_suites = cipher_suites,
        padded_length = padded_length,
        not_before = not_before,
        not_after = not_after,
        extension = extension,
    )
