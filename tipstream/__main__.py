"""Run ingestion from the chain into MongoDB until SIGINT / SIGTERM.

Configuration comes from the environment (``TIPSTREAM_MONGO_*``,
``TIPSTREAM_CHAIN_*``, ``TIPSTREAM_INGEST_*``); ``TIPSTREAM_LOG_LEVEL``
sets the log level.
"""

import asyncio
import logging
import os
import signal

from .application import ApplicationBuilder, IngestionConfiguration
from .integrations.mongodb import MongoCheckpointBackend, MongoConfiguration, MongoProjectionStore
from .integrations.web3 import ChainConfiguration, Web3LogSource

LOGGER = logging.getLogger("tipstream")


async def main() -> None:
    mongo = MongoConfiguration()
    app = (
        ApplicationBuilder()
        .register_resource(mongo)
        .use_store(MongoProjectionStore(mongo))
        .use_checkpoints(MongoCheckpointBackend(mongo))
        .use_source(Web3LogSource(ChainConfiguration()))
        .use_config(IngestionConfiguration())
        .build()
    )

    def request_stop() -> None:
        LOGGER.info("Shutdown requested, finishing in-flight event")
        app.stop()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, request_stop)

    async with app:
        await app.run_ingestion()


def run() -> None:
    logging.basicConfig(
        level=os.environ.get("TIPSTREAM_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(main())


if __name__ == "__main__":
    run()
