"""
Operator entrypoint: python run_api.py

Same as the statcounter-api console script. Settings come from the
environment / .env (statcounter.config). Keep to one process: the running
totals live in its memory.
"""

import logging
import sys

from statcounter.config import settings
from statcounter.main import run

logger = logging.getLogger("statcounter.run_api")


def main() -> int:
    try:
        run()
    except Exception:
        logging.basicConfig(level=logging.ERROR)
        logger.exception("statcounter API failed to start")
        print(f"\nstatcounter API failed to start (env={settings.env}).", file=sys.stderr)
        print(f"   database: {settings.resolved_database_url}", file=sys.stderr)
        print(f"   listen:   {settings.host}:{settings.port}", file=sys.stderr)
        if settings.is_prod and settings.session_secret == "change-me":
            print("   SESSION_SECRET still has its default value.", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
