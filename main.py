#!/usr/bin/env python3
"""Postfix aggregator entry point: tails the mail log and ships per-transaction documents."""

import argparse
import asyncio
import logging
import signal
import sys

from postfix_aggregator.config import Config, ensure_spool_dir, load_config
from postfix_aggregator.controller import BatchController
from postfix_aggregator.metrics import Metrics
from postfix_aggregator.normalizer import EventNormalizer
from postfix_aggregator.reader import Bookmark, LogReader
from postfix_aggregator.store import FileDocumentStore, StoreError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [AGGREGATOR] %(levelname)s %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Postfix log aggregator")
    parser.add_argument(
        "--config", default=None,
        help="Path to YAML config file (default: $CONFIG_PATH or /etc/postfix-aggregator.yml)",
    )
    return parser


async def run(config: Config, shutdown: asyncio.Event) -> None:
    store = FileDocumentStore(config.data_dir)
    await store.ping()
    logger.info("Document store is up at %s", config.data_dir)

    metrics = Metrics(config.metrics_file)
    controller = BatchController(store, config, metrics)
    normalizer = EventNormalizer(controller.queue, family=config.service_family, metrics=metrics)
    reader = LogReader(config.log_file, Bookmark(config.bookmark_file, config.log_file),
                       config.batch_limit)
    logger.info("Reading %s, batch limit=%d", config.log_file, config.batch_limit)

    try:
        while not shutdown.is_set():
            lines = reader.read_batch()
            if not lines:
                try:
                    await asyncio.wait_for(shutdown.wait(), timeout=config.poll_interval)
                except asyncio.TimeoutError:
                    pass
                continue

            for line in lines:
                normalizer.normalize(line)
            await controller.flush(on_settled=reader.advance)
    finally:
        if reader.pending:
            logger.info("Unacknowledged lines will be read again on the next start")
        metrics.save()


async def main(argv=None) -> int:
    args = build_cli_parser().parse_args(argv)
    config = load_config(args.config)
    logging.getLogger().setLevel(config.log_level.upper())

    try:
        ensure_spool_dir(config.spool_dir)
    except OSError as e:
        logger.error("Spool dir %s unusable: %s", config.spool_dir, e)
        return 1

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    task = asyncio.create_task(run(config, shutdown))
    stop = asyncio.create_task(shutdown.wait())
    await asyncio.wait({task, stop}, return_when=asyncio.FIRST_COMPLETED)

    if not task.done():
        # unacknowledged lines are read again from the bookmark
        # on the next start
        logger.info("Shutdown signal received, stopping...")
        task.cancel()
    stop.cancel()

    try:
        await task
    except asyncio.CancelledError:
        pass
    except StoreError as e:
        logger.error("Document store is not available: %s", e)
        return 1

    logger.info("Postfix aggregator stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
