"""
Node startup and shutdown procedures
"""

from config.node_config import NodeConfig
from events.broadcast import UpdateBroadcaster
from log_utils import get_logger
from network.ingest_server import IngestServer
from network.update_server import UpdateServer, split_address
from node.ingest import IngestionAdapter, IngestQueue
from node.processor import SlotProcessor

logger = get_logger(__name__)


class ProofNode:
    """Wires the ingest binding, slot processor and update server together"""

    def __init__(self, config: NodeConfig, require_startup: bool = True):
        self.config = config
        self.queue = IngestQueue(config.ingress_queue_size, config.ingress_backpressure)
        self.adapter = IngestionAdapter(self.queue, require_startup=require_startup)
        self.broadcaster = UpdateBroadcaster(config.broadcast_capacity)
        self.processor = SlotProcessor(
            self.queue,
            self.broadcaster,
            config.pubkeys_for_proofs(),
            max_inflight_slots=config.max_inflight_slots,
        )
        self.update_server = UpdateServer(self.broadcaster)
        self.ingest_server = IngestServer(self.adapter)

    async def startup(self):
        logger.info("Starting node initialization")
        logger.info(f"Monitoring {len(self.processor.pubkeys_for_proofs)} accounts")
        await self.processor.start()
        host, port = split_address(self.config.bind_address)
        await self.update_server.start_server(host, port)
        host, port = split_address(self.config.ingest_address)
        await self.ingest_server.start_server(host, port)
        logger.info("Node initialization completed")

    async def shutdown(self):
        """Stop accepting events; in-flight slot state is discarded"""
        logger.info("Starting node shutdown")
        await self.ingest_server.stop()
        await self.processor.stop()
        self.broadcaster.close()
        await self.update_server.stop()
        logger.info(f"Node shutdown complete, processor stats: {self.processor.stats}")
