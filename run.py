"""
Development server for the inspection diagnostics API.

asyncpg cannot run on the ProactorEventLoop that uvicorn picks on Windows, so
the loop factory is swapped for a selector loop before uvicorn starts.

Usage:
    python run.py                          # 127.0.0.1:8000
    python run.py --reload                 # restart on code changes
    python run.py --host 0.0.0.0 --port 9000
"""
import sys

if sys.platform == "win32":
    import asyncio

    import uvicorn.loops.asyncio as _uvicorn_loops

    def _selector_loop_factory(use_subprocess: bool = False):
        return asyncio.SelectorEventLoop

    _uvicorn_loops.asyncio_loop_factory = _selector_loop_factory

import argparse

import uvicorn

from inspectai.config import settings


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the inspection diagnostics API")
    parser.add_argument("--reload", action="store_true", default=False)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    uvicorn.run(
        "inspectai.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.LOG_LEVEL.lower(),
        loop="asyncio",
    )
