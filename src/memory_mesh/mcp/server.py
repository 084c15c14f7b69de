"""MCP server exposing the memory service as tools over stdio."""

import json
from collections.abc import Awaitable, Callable
from typing import Any

import mcp.types as types
import pydantic
from mcp.server.lowlevel import Server

from memory_mesh.core.base import ApplicationError, ValidationErrorDetails
from memory_mesh.core.config import settings
from memory_mesh.core.errors import ValidationError
from memory_mesh.core.logging import clear_log_context, get_logger, set_log_context, update_log_context
from memory_mesh.domain.models.memory import MemoryUpdate
from memory_mesh.mcp.tools import (
    TOOLS,
    AssociationGraphRequest,
    AssociationRequest,
    ConsolidateMemoriesRequest,
    DeleteAllMemoriesRequest,
    DeleteMemoriesBulkRequest,
    FindMemoryPathsRequest,
    MemoryIdRequest,
    SearchMemoriesRequest,
    StoreChunkedMemoryRequest,
    StoreMemoryRequest,
    UpdateMemoryRequest,
    tool_schema,
)
from memory_mesh.services.memory_service import MemoryService

logger = get_logger(__name__)


class ToolError(Exception):
    """Raised out of a tool call so the client receives an error result.

    The message is the JSON form of the underlying ApplicationError.
    """

    def __init__(self, error: ApplicationError):
        self.error = error
        super().__init__(json.dumps(error.to_dict(), default=str))


def _dump(value: Any) -> Any:
    if isinstance(value, pydantic.BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _text(payload: Any) -> list[types.ContentBlock]:
    return [types.TextContent(type="text", text=json.dumps(_dump(payload), ensure_ascii=False, default=str))]


def _invalid_arguments(tool: str, error: pydantic.ValidationError) -> ValidationError:
    first = error.errors()[0] if error.errors() else {}
    return ValidationError(
        f"Invalid arguments for {tool}: {error.error_count()} validation error(s)",
        details=ValidationErrorDetails(
            source="mcp",
            operation=tool,
            field=".".join(str(part) for part in first.get("loc", ())) or None,
            constraint=first.get("msg"),
        ),
    )


def create_mcp_server(service: MemoryService) -> Server:
    """Create the MCP server with one tool per memory operation."""
    app = Server(settings.server_name)

    async def store_memory(request: StoreMemoryRequest) -> Any:
        return await service.create(
            request.content,
            request.memory_type,
            request.context,
            request.importance,
            request.summary,
            request.metadata,
        )

    async def store_memory_chunked(request: StoreChunkedMemoryRequest) -> Any:
        memories = await service.create_with_chunking(
            request.content,
            request.memory_type,
            request.context,
            request.importance,
            request.chunking,
            request.summary,
        )
        return {"parent_id": memories[0].id, "count": len(memories), "memories": memories}

    async def search_memories(request: SearchMemoriesRequest) -> Any:
        if request.reconstruct_chunks:
            results = await service.search_chunked(request)
        else:
            results = await service.search(request)
        return {"count": len(results), "memories": results}

    async def get_memory(request: MemoryIdRequest) -> Any:
        memory = await service.get(request.memory_id)
        if memory is None:
            return {"found": False, "memory_id": request.memory_id}
        return memory

    async def update_memory(request: UpdateMemoryRequest) -> Any:
        updates = MemoryUpdate(**request.model_dump(exclude={"memory_id"}))
        memory = await service.update(request.memory_id, updates)
        if memory is None:
            return {"found": False, "memory_id": request.memory_id}
        return memory

    async def delete_memory(request: MemoryIdRequest) -> Any:
        await service.delete(request.memory_id)
        return {"deleted": request.memory_id}

    async def delete_memories_bulk(request: DeleteMemoriesBulkRequest) -> Any:
        return await service.bulk_delete(request.memory_ids)

    async def delete_all_memories(request: DeleteAllMemoriesRequest) -> Any:
        if not request.confirm:
            raise ValidationError(
                "Refusing to delete all memories without confirm=true",
                details=ValidationErrorDetails(
                    source="mcp",
                    operation="delete_all_memories",
                    field="confirm",
                    actual_value=request.confirm,
                    constraint="must be true",
                ),
            )
        return {"deleted_all": await service.delete_all()}

    async def connect_memories(request: AssociationRequest) -> Any:
        await service.connect(request.source_id, request.target_id, request.bidirectional)
        return {"connected": [request.source_id, request.target_id], "bidirectional": request.bidirectional}

    async def remove_association(request: AssociationRequest) -> Any:
        await service.remove_association(request.source_id, request.target_id, request.bidirectional)
        return {"removed": [request.source_id, request.target_id], "bidirectional": request.bidirectional}

    async def find_memory_paths(request: FindMemoryPathsRequest) -> Any:
        paths = await service.find_paths(
            request.start_id, request.end_id, request.max_depth, request.include_content
        )
        return {"count": len(paths), "paths": [_dump(path) for path in paths]}

    async def get_association_graph(request: AssociationGraphRequest) -> Any:
        return await service.association_graph(
            request.center_id, request.depth, request.min_importance, request.include_content
        )

    async def consolidate_memories(request: ConsolidateMemoriesRequest) -> Any:
        return await service.consolidate(request.memory_ids, request.strategy, request.keep_originals)

    handlers: dict[str, Callable[[Any], Awaitable[Any]]] = {
        "store_memory": store_memory,
        "store_memory_chunked": store_memory_chunked,
        "search_memories": search_memories,
        "get_memory": get_memory,
        "update_memory": update_memory,
        "delete_memory": delete_memory,
        "delete_memories_bulk": delete_memories_bulk,
        "delete_all_memories": delete_all_memories,
        "connect_memories": connect_memories,
        "remove_association": remove_association,
        "find_memory_paths": find_memory_paths,
        "get_association_graph": get_association_graph,
        "consolidate_memories": consolidate_memories,
    }

    @app.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.ContentBlock]:
        """Validate the arguments and run the matching service operation."""
        if name not in handlers:
            raise ValueError(f"Unknown tool: {name}")

        set_log_context({"tool": name})
        try:
            _, request_model = TOOLS[name]
            try:
                request = request_model.model_validate(arguments or {})
            except pydantic.ValidationError as e:
                raise _invalid_arguments(name, e) from e
            if memory_id := getattr(request, "memory_id", None):
                update_log_context("memory_id", memory_id)
            return _text(await handlers[name](request))
        except ApplicationError as e:
            logger.warning(f"Tool {name} failed: {e.message}", error_code=e.code.value)
            raise ToolError(e) from e
        finally:
            clear_log_context()

    @app.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [
            types.Tool(name=name, description=description, inputSchema=tool_schema(name))
            for name, (description, _) in TOOLS.items()
        ]

    return app
