#!/usr/bin/env python3

"""Makes an X25519 HPKE key pair and ECHOConfig structure."""

import argparse
import logging
import sys

from esni_common import *
from esni_crypto import Keypair, gen_hpke_keypair
from esni_keys import FinalizedConfig, Version, ECHO_VERSIONS, ESNI_VERSIONS, build_config, get_version
from esni_render import base64_config, echoconfig_pem
from util import parse_version
from wire import write_files


def make_echoconfig(
    version: int,
    keypair: Keypair,
    public_name: str|None = None,
) -> tuple[FinalizedConfig, str]:
    """Returns the ECHOConfig and its Base64 form."""
    hint = "try using mk_esnikeys instead" if version in ESNI_VERSIONS else "exiting"
    ver = get_version(version, ECHO_VERSIONS, hint)
    config = build_config(ver, keypair.public, name=public_name)
    return config, base64_config(config)


def main(argv: list[str]|None = None) -> int:
    parser = argparse.ArgumentParser(description="Make an ECHOConfig and corresponding private key")
    parser.add_argument('--pemout', default=None,
                        help=f"PEM output file with private key and ECHOConfig - default {DEFAULT_ECHO_PEMFILE}")
    parser.add_argument('--pubout', default=None, help="ECHOConfig output file - default unset")
    parser.add_argument('--privout', default=None, help="private key output file - default unset")
    parser.add_argument('--public_name', default=None, help="public_name value")
    parser.add_argument('--echo_version', type=parse_version, default=Version.ECHO_DRAFT04.value,
                        help="ECHOConfig version (default=0xff03)")
    parser.add_argument('-v', '--verbose', action='store_true')
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if DEBUG else logging.INFO if args.verbose else logging.WARNING
    logging.basicConfig(level=log_level)

    try:
        keypair = gen_hpke_keypair()
        config, b64config = make_echoconfig(args.echo_version, keypair, args.public_name)
        pemfile = args.pemout or DEFAULT_ECHO_PEMFILE
        outputs: list[tuple[str, bytes]] = []
        if args.pubout is not None:
            outputs.append((args.pubout, b64config.encode('ascii') + b'\n'))
        if args.privout is not None:
            outputs.append((args.privout, keypair.private))
        if not outputs:
            outputs.append((pemfile, echoconfig_pem(keypair.private, b64config)))
        write_files(outputs)
    except (EsniError, OSError, ValueError) as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 1

    if args.pubout is not None:
        print(f"Wrote ECHOConfig to {args.pubout}", file=sys.stderr)
    if args.privout is not None:
        print(f"Wrote ECHO private key to {args.privout}", file=sys.stderr)

    if args.pubout is None and args.privout is None:
        print(f"Wrote ECHO key pair to {pemfile}", file=sys.stderr)
    else:
        if args.privout is None:
            logger.warning("Didn't write private key anywhere! That's a bit silly")
        if args.pubout is None:
            logger.warning("Didn't write ECHOConfig anywhere! That's a bit silly")
    return 0

if __name__ == '__main__':
    sys.exit(main())
