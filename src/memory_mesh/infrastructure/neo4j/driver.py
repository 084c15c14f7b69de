"""Neo4j driver lifecycle."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from neo4j import AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import AuthError, ServiceUnavailable

from memory_mesh.core.base import DatabaseErrorDetails
from memory_mesh.core.config import Settings, settings
from memory_mesh.core.errors import ServiceError
from memory_mesh.core.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def create_neo4j_driver(
    config: Settings | None = None,
    max_connection_pool_size: int = 50,
    max_connection_lifetime: int = 3600,
) -> AsyncIterator[AsyncDriver]:
    """Open a verified Neo4j driver and close it on exit.

    Args:
        config: Settings to read the connection from (defaults to the global settings)
        max_connection_pool_size: Maximum size of the connection pool
        max_connection_lifetime: Maximum lifetime of connections in seconds

    Yields:
        AsyncDriver: Connected Neo4j driver

    Raises:
        ServiceError: If the database cannot be reached or rejects the credentials
    """
    config = config or settings
    logger.info(
        "Creating Neo4j driver",
        uri=config.neo4j_uri,
        pool_size=max_connection_pool_size,
        connection_lifetime=max_connection_lifetime,
    )

    driver = AsyncGraphDatabase.driver(
        config.neo4j_uri,
        auth=(config.neo4j_user, config.neo4j_password),
        max_connection_pool_size=max_connection_pool_size,
        max_connection_lifetime=max_connection_lifetime,
    )

    try:
        await driver.verify_connectivity()
    except (ServiceUnavailable, AuthError) as e:
        await driver.close()
        raise ServiceError(
            message=f"Could not connect to Neo4j at {config.neo4j_uri}: {e}",
            details=DatabaseErrorDetails(
                source="neo4j_driver",
                operation="verify_connectivity",
                service_name="Neo4j",
                endpoint=config.neo4j_uri,
            ),
        ) from e

    logger.info("Neo4j connection established")
    try:
        yield driver
    finally:
        await driver.close()
        logger.info("Neo4j driver closed")
