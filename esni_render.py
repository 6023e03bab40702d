"""Text forms of finished structures: Base64, zone file fragment, PEM."""

from esni_common import *
from esni_keys import FinalizedConfig, Version
from util import b64enc

ECHOCONFIG_BEGIN = '-----BEGIN ECHOCONFIG-----'
ECHOCONFIG_END   = '-----END ECHOCONFIG-----'

FOLD_WIDTH = 16
# lines up continuation lines under the RDATA: len(". IN TYPE65439 \# ")
RDATA_INDENT = 18


def base64_config(config: FinalizedConfig|bytes, capacity: int = MAX_ECHOCONFIGS_BUFLEN) -> str:
    """Base64 of an ECHOConfig, which must fit capacity with a terminator."""
    if isinstance(config, FinalizedConfig):
        if config.version.is_esni:
            raise EsniError(f"Base64 form is only for ECHOConfig, not {config.version.layout.label} {config.version}")
        config = config.raw
    encoded = b64enc(config)
    if len(encoded) >= capacity - 1:
        raise RenderBufferTooSmall(f"Base64 form needs {len(encoded) + 1} bytes, only have {capacity}")
    return encoded

def zone_fragment(config: FinalizedConfig|bytes, owner_name: str, rrtype: int = ESNI_RRTYPE) -> str:
    """DNS zone file line(s) for the value, in generic unknown-RR syntax.

    Longer than 16 bytes gets folded into parenthesised lines of 16 bytes,
    with a space every 2 bytes.
    """
    if isinstance(config, FinalizedConfig):
        if config.version != Version.ESNI_DRAFT03:
            raise EsniError(f"zone fragment is only for ESNIKeys {Version.ESNI_DRAFT03}, not {config.version}")
        config = config.raw
    blen = len(config)
    head = f"{owner_name}. IN TYPE{rrtype} \\# {blen} "
    if blen <= FOLD_WIDTH:
        return head + config.hex() + '\n'

    padding = ' ' * (len(owner_name) + RDATA_INDENT)
    parts = [head, '(']
    for index, byte in enumerate(config):
        if index % FOLD_WIDTH == 0:
            parts.append('\n' + padding)
        elif index % 2 == 0:
            parts.append(' ')
        parts.append(f'{byte:02x}')
    parts.append(' )\n')
    return ''.join(parts)

def echoconfig_pem(private_pem: bytes, b64config: str) -> bytes:
    """Private key followed by the ECHOConfig, both in one PEM file."""
    return b''.join([
        private_pem,
        f'{ECHOCONFIG_BEGIN}\n'.encode('ascii'),
        b64config.encode('ascii'),
        b'\n',
        f'{ECHOCONFIG_END}\n'.encode('ascii'),
    ])

def split_echoconfig_pem(pem: bytes) -> tuple[bytes, str]:
    """Reverses echoconfig_pem, returning (private_pem, b64config)."""
    text = pem.decode('ascii')
    start = text.find(ECHOCONFIG_BEGIN)
    end = text.find(ECHOCONFIG_END)
    if start < 0 or end < start:
        raise ValueError("no ECHOCONFIG block in PEM data")
    b64config = text[start+len(ECHOCONFIG_BEGIN):end].strip()
    return text[:start].encode('ascii'), b64config
