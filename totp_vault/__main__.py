"""Operator commands: ``python -m totp_vault <command>``.

    generate-key               print new SECRET_ENCRYPTION_KEY_BASE64 material
    status                     show storage mode, user count and encryption state
    rotate --new-key-env NAME  re-encrypt every secret with the key in $NAME
"""
import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from .vault import (
    SecretCodec,
    VaultConfig,
    VaultStore,
    generate_encryption_key,
    rotate_secrets,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


async def _status(config: VaultConfig) -> int:
    store = VaultStore(config)
    await store.initialize()
    try:
        snapshot = await store.read()
    finally:
        await store.close()
    codec = SecretCodec(config.encryption_key)
    print(f"storage: {store.mode}")
    print(f"users: {len(snapshot)}")
    print(f"secrets: {sum(len(v) for v in snapshot.values())}")
    print(f"encryption: {'on' if codec.encryption_enabled else 'off'}")
    return 0


async def _rotate(config: VaultConfig, new_key_env: str) -> int:
    new_material = os.environ.get(new_key_env)
    if new_key_env and not new_material:
        print(f"{new_key_env} is not set", file=sys.stderr)
        return 2
    old_codec = SecretCodec(config.encryption_key)
    new_codec = SecretCodec(new_material)
    if new_material and not new_codec.encryption_enabled:
        print(f"{new_key_env} is not a valid 64-byte base64 key", file=sys.stderr)
        return 2
    store = VaultStore(config)
    await store.initialize()
    try:
        stats = await rotate_secrets(store, old_codec, new_codec)
    finally:
        await store.close()
    print(stats)
    return 1 if stats["errors"] else 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="totp-vault")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("generate-key", help="print new base64 key material")
    sub.add_parser("status", help="show storage and encryption state")
    rotate = sub.add_parser("rotate", help="re-encrypt all secrets")
    rotate.add_argument(
        "--new-key-env",
        default="",
        help="environment variable holding the new key; empty decrypts to plaintext",
    )
    args = parser.parse_args(argv)

    if args.command == "generate-key":
        print(generate_encryption_key())
        return 0

    _configure_logging(args.verbose)
    config = VaultConfig.from_env()
    if args.command == "status":
        return asyncio.run(_status(config))
    return asyncio.run(_rotate(config, args.new_key_env))


if __name__ == "__main__":
    raise SystemExit(main())
