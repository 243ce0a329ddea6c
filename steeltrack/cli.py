"""
SteelTrack administration command line
Schema migration, access code setup and offline CSV import
"""
import argparse
import getpass
import json
import logging
import sys

from steeltrack.core.database import SessionLocal, init_db
from steeltrack.core.exceptions import AuthenticationError, SteelTrackException
from steeltrack.core.logging import setup_logging
from steeltrack.core.security import AccessContext
from steeltrack.services.auth_service import AuthService
from steeltrack.services.csv_import.combined_import import CombinedImporter
from steeltrack.services.csv_import.inventory_import import InventoryImporter
from steeltrack.services.csv_import.sales_import import SalesImporter
from steeltrack.services.encryption_service import EncryptionService

logger = logging.getLogger(__name__)

IMPORTERS = {
    "inventory": InventoryImporter,
    "sales": SalesImporter,
    "combined": CombinedImporter,
}


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="SteelTrack database administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create or upgrade the schema
  steeltrack-admin migrate

  # Configure the access code on a fresh database
  steeltrack-admin setup-code

  # Import a combined report
  steeltrack-admin import combined report.tsv
        """
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--code", help="Access code; prompted for when omitted")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("migrate", help="Apply pending schema migrations")
    commands.add_parser("setup-code", help="Configure the access code")
    commands.add_parser("status", help="Show encrypted and plaintext value counts")
    commands.add_parser("encrypt-legacy", help="Encrypt remaining plaintext values")

    import_parser = commands.add_parser("import", help="Import a CSV file")
    import_parser.add_argument("kind", choices=sorted(IMPORTERS))
    import_parser.add_argument("file", help="Path of the CSV file")

    return parser.parse_args(argv)


def _access_code(args) -> str:
    return args.code or getpass.getpass("Access code: ")


def _unlock(db, args) -> AccessContext:
    code = _access_code(args)
    if not AuthService(db).verify(code):
        raise AuthenticationError("Invalid access code")
    return AccessContext(code)


def run(args) -> int:
    report = init_db()
    if args.command == "migrate":
        print(f"Applied: {', '.join(report.applied) or 'none'}")
        if report.failures:
            print(f"Failed (will retry): {', '.join(report.failures)}")
        return 0

    db = SessionLocal()
    try:
        if args.command == "setup-code":
            AuthService(db).setup_access_code(_access_code(args))
            print("Access code configured")
            return 0

        with _unlock(db, args) as context:
            if args.command == "status":
                result = EncryptionService(db, context).encryption_status()
            elif args.command == "encrypt-legacy":
                result = EncryptionService(db, context).encrypt_legacy_rows()
            else:
                result = IMPORTERS[args.kind](db, context).import_file(args.file).to_dict()
        print(json.dumps(result, indent=2))
        return 0
    finally:
        db.close()


def main(argv=None) -> int:
    args = parse_arguments(argv)
    setup_logging(args.log_level, log_to_file=False)
    try:
        return run(args)
    except SteelTrackException as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
