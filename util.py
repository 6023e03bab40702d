"""Various small utility or helper stuff not ESNI specific."""

from typing import Any
import base64
import pprint

type _Pretty = str | list[_Pretty] | dict[str, _Pretty]

def _pretty_prep(obj: Any, byteslen: int|None=None) -> _Pretty :
    if isinstance(obj, bytes) or isinstance(obj, bytearray):
        if byteslen is not None and len(obj) > byteslen:
            return f"{obj[:byteslen//2].hex()}...{obj[-byteslen//2:].hex()}"
        else:
            return obj.hex()
    elif isinstance(obj, tuple):
        if hasattr(obj, '_asdict'):
            return _pretty_prep(obj._asdict(), byteslen)
        else:
            return [_pretty_prep(value, byteslen) for value in obj]
    elif isinstance(obj, dict):
        return {str(key): _pretty_prep(value, byteslen) for key,value in obj.items()}
    elif isinstance(obj, list):
        return [_pretty_prep(value, byteslen) for value in obj]
    else:
        return str(obj)

def pformat(obj:Any, byteslen:int=32, **kwargs: Any) -> str:
    return pprint.pformat(_pretty_prep(obj, byteslen), sort_dicts=False, **kwargs)

def hexdump(raw: bytes, width: int = 16, prefix: str = '    ') -> str:
    """Colon separated hex, one row per `width` bytes."""
    rows = (raw[i:i+width] for i in range(0, len(raw), width))
    return '\n'.join(prefix + ':'.join(f'{b:02x}' for b in row) for row in rows)

def b64enc(raw_bytes: bytes) -> str:
    return base64.b64encode(raw_bytes).decode('ascii')

def b64dec(b64_str: str) -> bytes:
    return base64.b64decode(b64_str)

def parse_version(arg: str) -> int:
    """Maps a version string like 0xff01 or 65281 to an int.

    Anything that doesn't parse, or isn't strictly between 0 and 0xffff,
    comes back as 0 so that it is rejected later as an unsupported version.
    """
    try:
        value = int(arg.strip(), 0)
    except ValueError:
        return 0
    if 0 < value < 0xffff:
        return value
    return 0
