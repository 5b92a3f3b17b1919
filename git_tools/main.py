from __future__ import annotations

import asyncio
import logging

import uvicorn

from . import __version__
from .api import create_app
from .config import load_options
from .git_client import GitTools
from .runner import VERBOSE


async def main() -> None:
    options = load_options()
    log_level_map = {
        "debug": logging.DEBUG,
        "verbose": VERBOSE,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    logging.basicConfig(
        level=log_level_map.get(options.log_level.lower(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    tools = GitTools(options)
    logger = logging.getLogger(__name__)
    logger.info(
        "Git tools starting | version=%s | repo=%s | remote=%s",
        __version__,
        options.repo_path,
        options.default_remote,
    )

    if options.http_api_port == 0:
        summary = await tools.get_git_status_summary()
        logger.info("Repository status | branch=%s | %s", summary.branch, summary.status)
        return

    app = create_app(tools)
    config = uvicorn.Config(app, host="0.0.0.0", port=options.http_api_port, log_level="info")
    server = uvicorn.Server(config)
    await server.serve()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
