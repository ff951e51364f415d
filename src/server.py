"""Protean Engine runner for the warehousing domain.

Only needed when an environment overlay switches event processing to
"async"; the Engine then feeds raised events to the stock movement log
projector outside the request.

Usage:
    python src/server.py
"""

import argparse
import asyncio

from protean.server.engine import Engine


def _get_domain(log_dir=None):
    """Import and initialize the warehousing domain."""
    from warehousing.domain import warehousing
    from warehousing.utils.logging import configure_logging

    configure_logging(log_dir=log_dir, log_file_prefix="warehousing_engine")
    warehousing.init()
    return warehousing


async def run(log_dir=None):
    engine = Engine(_get_domain(log_dir))
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Warehousing Engine runner")
    parser.add_argument("--log-dir", help="Also write rotating log files to this directory")
    args = parser.parse_args()

    asyncio.run(run(args.log_dir))


if __name__ == "__main__":
    main()
