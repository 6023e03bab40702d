"""Common imports and classes across the various pieces of ESNIKeys code."""

from typing import Any, override, Self
from collections.abc import Iterable, Callable
from functools import cached_property
from dataclasses import dataclass, field
from config import *

import logging
logger = logging.getLogger('esnikeys')

if DEBUG:
    logger.setLevel(logging.DEBUG)

class EsniError(RuntimeError):
    pass

class UnsupportedVersion(EsniError):
    def __init__(self, version: int, hint: str = '') -> None:
        self.version = version
        msg = f"Unsupported version (0x{version:04x})"
        if hint:
            msg += f" - {hint}"
        super().__init__(msg)

class BufferOverflow(EsniError):
    pass

class TooManyAddresses(EsniError):
    pass

class AddressParseError(EsniError):
    pass

class ExtensionTooLarge(EsniError):
    pass

class DigestUnavailable(EsniError):
    pass

class KeyGenerationFailed(EsniError):
    pass

class RenderBufferTooSmall(EsniError):
    pass

class NotSupportedByVersion(EsniError):
    pass

class NameNotAllowed(NotSupportedByVersion):
    pass

class AddressSetNotAllowed(NotSupportedByVersion):
    pass

class NameRequired(EsniError):
    pass

class NameTooLong(EsniError):
    pass

class KeyLengthError(EsniError):
    pass

class InvalidDuration(EsniError):
    pass

class ResolutionError(EsniError):
    pass
