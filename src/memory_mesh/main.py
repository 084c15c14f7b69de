"""memory-mesh entry point: wires the providers and the store, then serves MCP over stdio."""

import logging
import os

import anyio
import logfire
from mcp.server.stdio import stdio_server

from memory_mesh.core.config import settings
from memory_mesh.core.logging import get_logger, setup_logging
from memory_mesh.infrastructure.analysis.anthropic_analysis import AnthropicAnalysisService
from memory_mesh.infrastructure.embeddings.voyage import VoyageEmbeddingService
from memory_mesh.infrastructure.neo4j.driver import create_neo4j_driver
from memory_mesh.infrastructure.neo4j.store import Neo4jVectorStore
from memory_mesh.mcp.server import create_mcp_server
from memory_mesh.services.memory_service import MemoryService

logger = get_logger(__name__)


async def main() -> None:
    """Run the MCP server until stdin closes."""
    setup_logging(logging.DEBUG if settings.debug else logging.INFO)
    # Traces are only exported when a token is configured
    logfire.configure(
        service_name=settings.server_name,
        token=os.getenv("LOGFIRE_TOKEN"),
        send_to_logfire="if-token-present",
        console=False,
    )

    logger.info(f"Starting {settings.server_name} MCP server with stdio transport")

    async with create_neo4j_driver() as driver:
        embeddings = VoyageEmbeddingService()
        analysis = AnthropicAnalysisService()

        store = Neo4jVectorStore(driver)
        await store.ensure_schema(embeddings.get_model_dimensions())

        service = MemoryService(store, embeddings, analysis)
        app = create_mcp_server(service)

        async with stdio_server() as streams:
            await app.run(streams[0], streams[1], app.create_initialization_options())

    logger.info(f"{settings.server_name} stopped")


def run() -> None:
    anyio.run(main)


if __name__ == "__main__":
    run()
