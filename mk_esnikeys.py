#!/usr/bin/env python3

"""Creates an ESNIKeys structure as per draft-ietf-tls-esni-[02|03].

Only TLS_AES_128_GCM_SHA256 and X25519 are supported. If the private key
file already exists and holds an X25519 key, that key is re-used.
"""

from pathlib import Path
import argparse
import logging
import sys

from esni_common import *
from esni_addrs import address_set_extension, read_address_file, resolve_addresses, dedup_addresses
from esni_crypto import Keypair, gen_x25519_keypair, load_x25519_keypair
from esni_keys import FinalizedConfig, Version, ESNI_VERSIONS, ECHO_VERSIONS, build_config, canonical_name, get_version, validity_window
from esni_render import zone_fragment
from util import parse_version
from wire import write_files


@dataclass
class EsniKeysOutput:
    config: FinalizedConfig
    keypair: Keypair
    new_key: bool
    zone: str|None = None


def make_esnikeys(
    version: int,
    keypair: Keypair,
    cover_name: str|None = None,
    addresses: Iterable[str]|None = None,
    duration: int = DEFAULT_DURATION,
    now: int|None = None,
    new_key: bool = True,
) -> EsniKeysOutput:
    """Checks the options against the version and builds everything in memory.

    addresses=None means no AddressSet extension at all.
    """
    hint = "try using mk_echoconfig instead" if version in ECHO_VERSIONS else ""
    ver = get_version(version, ESNI_VERSIONS, hint)
    if ver == Version.ESNI_DRAFT02 and addresses is not None:
        raise AddressSetNotAllowed(f"Version {ver} doesn't support AddressSet")
    not_before, not_after = validity_window(now, duration)

    extension = None
    if addresses is not None:
        extension = address_set_extension(dedup_addresses(addresses))

    config = build_config(
        version = ver,
        public_key = keypair.public,
        name = cover_name,
        extension = extension,
        not_before = not_before,
        not_after = not_after,
    )
    zone = None
    if ver == Version.ESNI_DRAFT03:
        assert cover_name is not None
        zone = zone_fragment(config, canonical_name(cover_name))
    return EsniKeysOutput(config=config, keypair=keypair, new_key=new_key, zone=zone)


def _load_or_gen_key(privfname: str) -> tuple[Keypair, bool]:
    path = Path(privfname)
    if path.exists():
        logger.info(f're-using private key from {privfname}')
        return load_x25519_keypair(path.read_bytes()), False
    return gen_x25519_keypair(), True

def _get_addresses(args: argparse.Namespace) -> list[str]|None:
    if args.addrset is None:
        return None
    if args.addrset:
        return read_address_file(args.addrset)
    return resolve_addresses(canonical_name(args.cover_name) or '')


def main(argv: list[str]|None = None) -> int:
    parser = argparse.ArgumentParser(
        description = "Create an ESNIKeys data structure as per draft-ietf-tls-esni-[02|03]",
        epilog = "-P, -A and -z are only supported for version 0xff02 and not 0xff01",
    )
    parser.add_argument('-V', '--version', dest='version', type=parse_version, default=Version.ESNI_DRAFT02.value,
                        help="ESNIKeys version to produce (default: 0xff01; 0xff02 allowed)")
    parser.add_argument('-o', dest='pubfname', default=DEFAULT_ESNI_PUBFILE,
                        help="output file for the binary-encoded ESNIKeys")
    parser.add_argument('-p', dest='privfname', default=DEFAULT_ESNI_PRIVFILE,
                        help="output file for the private key; re-used if it exists")
    parser.add_argument('-d', dest='duration', type=int, default=DEFAULT_DURATION,
                        help="seconds from now for which the public share should be valid (default: 1 week)")
    parser.add_argument('-P', dest='cover_name', default=None,
                        help="public-/cover-name value")
    parser.add_argument('-A', dest='addrset', nargs='?', const='', default=None, metavar='FILE',
                        help="include an AddressSet extension, from FILE (one IP per line) or by resolving the cover name")
    parser.add_argument('-z', dest='fragfname', default=None,
                        help=f"zone fragment output file (default: {DEFAULT_ZONEFRAG_FILE})")
    parser.add_argument('-v', '--verbose', action='store_true')
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if DEBUG else logging.INFO if args.verbose else logging.WARNING
    logging.basicConfig(level=log_level)

    try:
        if args.version == Version.ESNI_DRAFT02:
            if args.cover_name is not None:
                raise NameNotAllowed(f"Version {Version.ESNI_DRAFT02} doesn't support Cover name")
            if args.addrset is not None:
                raise AddressSetNotAllowed(f"Version {Version.ESNI_DRAFT02} doesn't support AddressSet")
            if args.fragfname is not None:
                logger.warning("-z is ignored for version 0xff01")
        elif args.version == Version.ESNI_DRAFT03 and args.cover_name is None:
            raise NameRequired(f"{Version.ESNI_DRAFT03} requires you to specify a cover/public-name")
        addresses = _get_addresses(args)
        keypair, new_key = _load_or_gen_key(args.privfname)
        out = make_esnikeys(
            version = args.version,
            keypair = keypair,
            cover_name = args.cover_name,
            addresses = addresses,
            duration = args.duration,
            new_key = new_key,
        )
        fragfname = args.fragfname or DEFAULT_ZONEFRAG_FILE
        outputs = [(args.pubfname, out.config.raw)]
        if out.zone is not None:
            outputs.append((fragfname, out.zone.encode('ascii')))
        # new key goes last
        if out.new_key:
            outputs.append((args.privfname, out.keypair.private))
        write_files(outputs)
    except (EsniError, OSError, ValueError) as e:
        print(f"Error - {e}\n", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    logger.info(f'wrote {len(out.config)} byte ESNIKeys to {args.pubfname}')
    if out.zone is not None:
        logger.info(f'ESNIKeys as DNS RR:\n{out.zone}')
        logger.info(f'wrote zone fragment to {fragfname}')
    if out.new_key:
        logger.info(f'wrote private key to {args.privfname}')
    return 0

if __name__ == '__main__':
    sys.exit(main())
