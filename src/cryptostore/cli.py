"""
cryptostore CLI

Commands:
  new       - Create a key and print its recovery phrase
  recover   - Recreate a key from its recovery phrase
  list      - List stored keys
  get       - Show one key
  update    - Change a key's passphrase
  delete    - Delete a key
  export    - Re-encrypt a key under a transfer passphrase
  import    - Import an exported key
  sign      - Sign a message
  serve     - Run the HTTP key server
"""

import argparse
import base64
import getpass
import sys
from dataclasses import replace

from .config import Settings, build_manager
from .crypto.signable import SignedMessage
from .errors import CryptoStoreError


def _passphrase(value, prompt="Passphrase: ", confirm=False):
    if value is not None:
        return value
    passphrase = getpass.getpass(prompt)
    if confirm and getpass.getpass("Repeat passphrase: ") != passphrase:
        print("Error: passphrases do not match")
        sys.exit(1)
    return passphrase


def _print_key(key_info):
    print(f"{key_info.name}")
    print(f"  Algorithm: {key_info.algorithm}")
    print(f"  Key ID: {key_info.key_id}")
    print(f"  Public Key: {key_info.public_key.hex()}")


def cmd_new(manager, args):
    """Create a key."""
    passphrase = _passphrase(args.passphrase, confirm=True)
    key_info, phrase = manager.create(args.name, passphrase, args.algorithm)
    _print_key(key_info)
    print()
    print("Recovery phrase (write it down, it is not stored anywhere):")
    print(phrase)


def cmd_recover(manager, args):
    """Recover a key from its phrase."""
    phrase = args.phrase if args.phrase is not None else input("Recovery phrase: ")
    passphrase = _passphrase(args.passphrase, confirm=True)
    _print_key(manager.recover(args.name, passphrase, phrase))


def cmd_list(manager, args):
    """List keys."""
    keys = manager.list()
    if not keys:
        print("No keys stored")
        return
    for key_info in keys:
        print(f"{key_info.name}\t{key_info.algorithm}\t{key_info.public_key.hex()}")


def cmd_get(manager, args):
    """Show one key."""
    _print_key(manager.get(args.name))


def cmd_update(manager, args):
    """Change a key's passphrase."""
    old = _passphrase(args.passphrase, "Current passphrase: ")
    new = _passphrase(args.new_passphrase, "New passphrase: ", confirm=True)
    manager.update(args.name, old, new)
    print(f"Passphrase updated for {args.name}")


def cmd_delete(manager, args):
    """Delete a key."""
    manager.delete(args.name, _passphrase(args.passphrase))
    print(f"Deleted {args.name}")


def cmd_export(manager, args):
    """Export a key."""
    passphrase = _passphrase(args.passphrase)
    transfer = _passphrase(args.transfer_passphrase, "Transfer passphrase: ", confirm=True)
    salt, ciphertext = manager.export(args.name, passphrase, transfer)
    print(f"Salt: {base64.b64encode(salt).decode('utf-8')}")
    print(f"Ciphertext: {base64.b64encode(ciphertext).decode('utf-8')}")


def cmd_import(manager, args):
    """Import an exported key."""
    transfer = _passphrase(args.transfer_passphrase, "Transfer passphrase: ")
    passphrase = _passphrase(args.passphrase, "New passphrase: ", confirm=True)
    key_info = manager.import_key(
        args.name,
        passphrase,
        transfer,
        base64.b64decode(args.salt, validate=True),
        base64.b64decode(args.ciphertext, validate=True),
    )
    _print_key(key_info)


def cmd_sign(manager, args):
    """Sign a message."""
    message = SignedMessage(args.message.encode('utf-8'))
    manager.sign(args.name, _passphrase(args.passphrase), message)
    print(f"Public Key: {message.public_key.hex()}")
    print(f"Signature: {message.signature.hex()}")


def cmd_serve(settings, args):
    """Run the key server."""
    from .api.server import run

    port = args.port or settings.port
    print(f"Starting cryptostore on {args.host}:{port}")
    run(replace(settings, port=port), host=args.host)


COMMANDS = {
    "new": cmd_new,
    "recover": cmd_recover,
    "list": cmd_list,
    "get": cmd_get,
    "update": cmd_update,
    "delete": cmd_delete,
    "export": cmd_export,
    "import": cmd_import,
    "sign": cmd_sign,
}


def build_parser():
    parser = argparse.ArgumentParser(
        prog="cryptostore",
        description="cryptostore - passphrase-protected key manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--backend", choices=["memory", "file", "sqlite"], help="Storage backend")
    parser.add_argument("--path", help="Key directory for the file backend")
    parser.add_argument("--database-url", help="Database URL for the sqlite backend")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    new_parser = subparsers.add_parser("new", help="Create a key")
    new_parser.add_argument("name")
    new_parser.add_argument("--algorithm", default="ed25519", help="ed25519 or secp256k1")
    new_parser.add_argument("--passphrase")

    recover_parser = subparsers.add_parser("recover", help="Recover a key from its phrase")
    recover_parser.add_argument("name")
    recover_parser.add_argument("--phrase")
    recover_parser.add_argument("--passphrase")

    subparsers.add_parser("list", help="List keys")

    get_parser = subparsers.add_parser("get", help="Show a key")
    get_parser.add_argument("name")

    update_parser = subparsers.add_parser("update", help="Change a passphrase")
    update_parser.add_argument("name")
    update_parser.add_argument("--passphrase")
    update_parser.add_argument("--new-passphrase")

    delete_parser = subparsers.add_parser("delete", help="Delete a key")
    delete_parser.add_argument("name")
    delete_parser.add_argument("--passphrase")

    export_parser = subparsers.add_parser("export", help="Export a key")
    export_parser.add_argument("name")
    export_parser.add_argument("--passphrase")
    export_parser.add_argument("--transfer-passphrase")

    import_parser = subparsers.add_parser("import", help="Import an exported key")
    import_parser.add_argument("name")
    import_parser.add_argument("--salt", required=True, help="Base64 salt from export")
    import_parser.add_argument("--ciphertext", required=True, help="Base64 ciphertext from export")
    import_parser.add_argument("--passphrase")
    import_parser.add_argument("--transfer-passphrase")

    sign_parser = subparsers.add_parser("sign", help="Sign a message")
    sign_parser.add_argument("name")
    sign_parser.add_argument("message")
    sign_parser.add_argument("--passphrase")

    serve_parser = subparsers.add_parser("serve", help="Run the key server")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    if args.backend:
        settings = replace(settings, backend=args.backend)
    if args.path:
        settings = replace(settings, storage_path=args.path)
    if args.database_url:
        settings = replace(settings, database_url=args.database_url)

    if args.command == "serve":
        cmd_serve(settings, args)
        return
    if args.command not in COMMANDS:
        parser.print_help()
        return

    try:
        COMMANDS[args.command](build_manager(settings), args)
    except (CryptoStoreError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
