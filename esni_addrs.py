"""AddressSet extension: IP address literals attached to the cover name.

Addresses come either from a file (one per line) or from resolving the
cover name, get de-duplicated, and are packed into a single extension
record of type 0x1001.
"""

from typing import override
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
import socket

from esni_common import *
from wire import Extension, TlvWriter, U16_MAX

ADDRESS_SET_TYPE = 0x1001

IPV4_TAG = 0x04
IPV6_TAG = 0x06


def add_address(addrs: list[str], text: str) -> bool:
    """Appends text to addrs unless already there. Returns True if added."""
    if text in addrs:
        return False
    if len(addrs) == MAX_ESNI_ADDRS:
        raise TooManyAddresses(f"Too many addresses found (max is {MAX_ESNI_ADDRS})")
    addrs.append(text)
    return True

def dedup_addresses(texts: Iterable[str]) -> list[str]:
    addrs: list[str] = []
    for text in texts:
        add_address(addrs, text)
    return addrs

def is_ipv6_literal(text: str) -> bool:
    # anything with a colon is treated as v6, whatever it really is
    return ':' in text

def encode_address(text: str) -> bytes:
    """Family tag followed by the packed address."""
    if is_ipv6_literal(text):
        family, tag = socket.AF_INET6, IPV6_TAG
    else:
        family, tag = socket.AF_INET, IPV4_TAG
    try:
        packed = socket.inet_pton(family, text)
    except (OSError, ValueError) as e:
        raise AddressParseError(f"Failed to convert string ({text}) to IP address") from e
    return tag.to_bytes(1) + packed


@dataclass(frozen=True)
class AddressSetExtension(Extension):
    typ: int = ADDRESS_SET_TYPE
    data: bytes = b''

    @override
    def encode(self) -> bytes:
        # The block length here is built from the high byte of n+4 and
        # the low byte of n+3, which deployed ESNIKeys values carry.
        nelen = len(self.data)
        out = TlvWriter(nelen + 6)
        out.append_u8(((nelen + 4) >> 8) % 256)
        out.append_u8((nelen + 3) % 256)
        out.append_u16(self.typ)
        out.length_prefixed(self.data)
        return bytes(out.getvalue())

def address_set_extension(addrs: Iterable[str]) -> AddressSetExtension:
    """Builds the AddressSet extension for already de-duplicated addresses."""
    addrs = list(addrs)
    if len(addrs) > MAX_ESNI_ADDRS:
        raise TooManyAddresses(f"{len(addrs)} addresses given, max is {MAX_ESNI_ADDRS}")
    payload = TlvWriter(U16_MAX)
    for index, text in enumerate(addrs):
        encoded = encode_address(text)
        family = 'IPv6' if encoded[0] == IPV6_TAG else 'IPv4'
        logger.info(f'{family} Address{index}: {text}')
        try:
            payload.append_bytes(encoded)
        except BufferOverflow as e:
            raise ExtensionTooLarge(f"Encoded extensions too big ({len(payload) + len(encoded)})") from e
    return AddressSetExtension(data = bytes(payload.getvalue()))


def read_address_file(path: str|Path) -> list[str]:
    """Reads one address per line, skipping comment lines starting with '#'."""
    addrs: list[str] = []
    with open(path, 'r') as fin:
        for line in fin:
            if line.startswith('#'):
                continue
            line = line.strip()
            if line:
                add_address(addrs, line)
    return addrs

def resolve_addresses(hostname: str) -> list[str]:
    """Looks up the A and AAAA records for hostname."""
    if not hostname:
        raise ResolutionError("Can't get address as no public-/cover-name supplied.")
    try:
        infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror as e:
        raise ResolutionError(f"getaddrinfo failed ({e.errno}) for {hostname}") from e
    addrs: list[str] = []
    for family, _, _, _, sockaddr in infos:
        if family not in (socket.AF_INET, socket.AF_INET6):
            continue
        add_address(addrs, sockaddr[0].split('%')[0])
    logger.info(f'resolved {hostname} to {addrs}')
    return addrs
