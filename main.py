#!/usr/bin/env python3
"""
Twinsight Auth -- account registration and session service.

Usage:
  python main.py                          # serve on 0.0.0.0:8080
  python main.py --host 127.0.0.1 --port 9000
  python main.py --config ./config.yml
  python main.py --check-schema           # verify/create tables, then exit

Configuration:
  USE_ENVIRONMENTAL_VARIABLES=TRUE  read MYSQL_HOST, MYSQL_DATABASE,
                                    MYSQL_USERNAME, MYSQL_PASSWORD,
                                    PASSWORD_PEPPER from the environment.
  otherwise                         read config.yml from the platform path
                                    (or --config). On first run a template is
                                    written there and the program exits so it
                                    can be edited.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from auth.schema import SchemaGuard
from core.config import ConfigError, ConfigTemplateCreated, Settings, load_settings
from core.database import Database, StorageError


def _load(config: Optional[str]) -> Settings:
    """Load settings or exit: 0 after writing a first-run template, 1 on bad config."""
    try:
        return load_settings(Path(config) if config else None)
    except ConfigTemplateCreated as exc:
        print(f"  An example configuration file has been created at {exc.path}.")
        print("  Please configure it before restarting the application.")
        sys.exit(0)
    except ConfigError as exc:
        print(f"  [!] {exc}")
        sys.exit(1)


def _check_schema(settings: Settings) -> int:
    database = Database.from_settings(settings)
    try:
        created = SchemaGuard(database).ensure_schema()
    except StorageError as exc:
        print(f"  [!] Schema check failed: {exc}")
        return 1
    finally:
        database.close()
    print("  Schema created." if created else "  Schema OK.")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Twinsight Auth -- account registration and session service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    parser.add_argument("--config", metavar="PATH", help="Config file path (file mode only)")
    parser.add_argument("--check-schema", action="store_true", help="Verify/create the tables and exit")
    args = parser.parse_args()

    settings = _load(args.config)

    if args.check_schema:
        sys.exit(_check_schema(settings))

    from api.main import app

    app.state.settings = settings
    print(f"  Starting server on {args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
