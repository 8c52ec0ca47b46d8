import logging
import traceback
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import mcp.types as types

import dao
from core.utils import log_ctx, to_json

logger = logging.getLogger("mcp-firestore")

OPERATORS = list(dao.WHERE_OPERATORS)

TOOLS: List[types.Tool] = [
    types.Tool(
        name="query_collection",
        description="Query a Firestore collection",
        inputSchema={
            "type": "object",
            "properties": {
                "collection": {"type": "string"},
                "limit": {"type": "number", "default": dao.DEFAULT_LIMIT},
                "orderBy": {"type": "string"},
                "orderDirection": {"type": "string", "enum": ["asc", "desc"], "default": "asc"},
            },
            "required": ["collection"],
        },
    ),
    types.Tool(
        name="get_document",
        description="Get a specific document by ID",
        inputSchema={
            "type": "object",
            "properties": {
                "collection": {"type": "string"},
                "docId": {"type": "string"},
            },
            "required": ["collection", "docId"],
        },
    ),
    types.Tool(
        name="query_with_where",
        description="Query a collection with where conditions",
        inputSchema={
            "type": "object",
            "properties": {
                "collection": {"type": "string"},
                "field": {"type": "string"},
                "operator": {"type": "string", "enum": OPERATORS},
                "value": {
                    "description": "Value to compare against. For in / not-in / array-contains-any pass an array "
                    "(or a JSON array string)",
                },
                "limit": {"type": "number", "default": dao.DEFAULT_LIMIT},
            },
            "required": ["collection", "field", "operator", "value"],
        },
    ),
    types.Tool(
        name="list_collections",
        description="List all top-level collections",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="create_document",
        description="Create a new document in a collection",
        inputSchema={
            "type": "object",
            "properties": {
                "collection": {"type": "string"},
                "docId": {
                    "type": "string",
                    "description": "Optional document ID. If not provided, Firestore will auto-generate one",
                },
                "data": {"type": "object", "description": "Document data as JSON object"},
            },
            "required": ["collection", "data"],
        },
    ),
    types.Tool(
        name="update_document",
        description="Update an existing document",
        inputSchema={
            "type": "object",
            "properties": {
                "collection": {"type": "string"},
                "docId": {"type": "string"},
                "data": {"type": "object", "description": "Fields to update as JSON object"},
                "merge": {"type": "boolean", "default": True, "description": "Whether to merge with existing data"},
            },
            "required": ["collection", "docId", "data"],
        },
    ),
    types.Tool(
        name="delete_document",
        description="Delete a document",
        inputSchema={
            "type": "object",
            "properties": {
                "collection": {"type": "string"},
                "docId": {"type": "string"},
            },
            "required": ["collection", "docId"],
        },
    ),
]

_REQUIRED = {tool.name: tool.inputSchema.get("required", []) for tool in TOOLS}


@dataclass
class ToolCallResult:
    """Outcome of one tool call: the JSON payload and whether it is an error."""

    payload: Dict[str, Any]
    is_error: bool = False

    @property
    def text(self) -> str:
        return to_json(self.payload)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ToolCallResult":
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls({"error": str(exc) or type(exc).__name__, "stack": stack}, is_error=True)


class ToolArgumentError(ValueError):
    pass


def _echo(value: Any) -> str:
    # lists render comma-joined, as clients expect in the query summary
    if value is None:
        return "null"
    if isinstance(value, (list, tuple)):
        return ",".join(map(str, value))
    return str(value)


class FirestoreToolDispatcher:
    """Maps MCP tool calls onto dao coroutines for one Firestore client."""

    def __init__(self, db):
        self.db = db
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "query_collection": self._query_collection,
            "get_document": self._get_document,
            "query_with_where": self._query_with_where,
            "list_collections": self._list_collections,
            "create_document": self._create_document,
            "update_document": self._update_document,
            "delete_document": self._delete_document,
        }

    def tools(self) -> List[types.Tool]:
        return list(TOOLS)

    async def call(self, name: str, arguments: Optional[Dict[str, Any]]) -> ToolCallResult:
        args = dict(arguments or {})
        logger.info("Tool called: %s", log_ctx(name=name, args=args))
        try:
            handler = self._handlers.get(name)
            if handler is None:
                raise ToolArgumentError(f"Unknown tool: {name}")
            missing = [key for key in _REQUIRED[name] if key not in args]
            if missing:
                raise ToolArgumentError(f"Missing required argument(s) for {name}: {', '.join(missing)}")
            return ToolCallResult(await handler(args))
        except Exception as e:
            logger.exception("Tool execution error: %s", log_ctx(name=name, error=e))
            return ToolCallResult.from_exception(e)

    # ---------- handlers ----------

    async def _query_collection(self, args):
        docs = await dao.query_collection(
            self.db,
            args["collection"],
            limit=args.get("limit") or dao.DEFAULT_LIMIT,
            order_by=args.get("orderBy"),
            order_direction=args.get("orderDirection") or "asc",
        )
        return {"collection": args["collection"], "count": len(docs), "documents": docs}

    async def _get_document(self, args):
        return await dao.get_document(self.db, args["collection"], args["docId"])

    async def _query_with_where(self, args):
        docs = await dao.query_where(
            self.db,
            args["collection"],
            args["field"],
            args["operator"],
            args["value"],
            limit=args.get("limit") or dao.DEFAULT_LIMIT,
        )
        return {
            "collection": args["collection"],
            "query": f"{args['field']} {args['operator']} {_echo(args['value'])}",
            "count": len(docs),
            "documents": docs,
        }

    async def _list_collections(self, args):
        return {"collections": await dao.list_collections(self.db)}

    async def _create_document(self, args):
        doc_id = await dao.create_document(self.db, args["collection"], args["data"], doc_id=args.get("docId"))
        return {"collection": args["collection"], "id": doc_id, "operation": "created"}

    async def _update_document(self, args):
        merge = args.get("merge")
        if merge is None:
            merge = True
        elif not isinstance(merge, bool):
            raise ToolArgumentError(f"merge must be a boolean, got {merge!r}")
        await dao.update_document(self.db, args["collection"], args["docId"], args["data"], merge=merge)
        return {"collection": args["collection"], "id": args["docId"], "operation": "updated", "merge": merge}

    async def _delete_document(self, args):
        await dao.delete_document(self.db, args["collection"], args["docId"])
        return {"collection": args["collection"], "id": args["docId"], "operation": "deleted"}
