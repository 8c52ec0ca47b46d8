# dao.py — Firestore data access layer (no MCP wiring)
# Used by mcp_servers/firestore_tools.py. Every function takes the AsyncClient explicitly.

from __future__ import annotations
from typing import Any, Dict, List, Optional
import json
import logging

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

logger = logging.getLogger("firestore-dao")

DEFAULT_LIMIT = 10

# client-facing operator -> python SDK operator
WHERE_OPERATORS: Dict[str, str] = {
    "==": "==",
    "!=": "!=",
    "<": "<",
    "<=": "<=",
    ">": ">",
    ">=": ">=",
    "in": "in",
    "not-in": "not-in",
    "array-contains": "array_contains",
    "array-contains-any": "array_contains_any",
}
_LIST_OPERATORS = {"in", "not-in", "array_contains_any"}

ORDER_DIRECTIONS = {
    "asc": firestore.Query.ASCENDING,
    "desc": firestore.Query.DESCENDING,
}

# ---------- helpers ----------

def _check_limit(limit: Any) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    if isinstance(limit, bool) or not isinstance(limit, (int, float)) or limit != int(limit):
        raise ValueError(f"limit must be a positive integer, got {limit!r}")
    if limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")
    return int(limit)


def _check_name(kind: str, value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{kind} must be a non-empty string")
    return value


def _as_list_value(value: Any) -> Any:
    """Operators taking a list also accept a JSON array encoded as a string."""
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return value
        if isinstance(decoded, list):
            return decoded
    return value


def _snapshot(doc) -> Dict[str, Any]:
    return {"id": doc.id, "data": doc.to_dict()}

# ---------- collections ----------

async def list_collections(db: firestore.AsyncClient) -> List[str]:
    """Return the IDs of all top-level collections."""
    return [col.id async for col in db.collections()]

# ---------- reads ----------

async def get_document(db: firestore.AsyncClient, collection: str, doc_id: str) -> Dict[str, Any]:
    """Return {id, exists, data}; data is None when the document is missing."""
    ref = db.collection(_check_name("collection", collection)).document(_check_name("docId", doc_id))
    snap = await ref.get()
    return {
        "id": snap.id,
        "exists": snap.exists,
        "data": snap.to_dict() if snap.exists else None,
    }


async def query_collection(
    db: firestore.AsyncClient,
    collection: str,
    limit: Any = DEFAULT_LIMIT,
    order_by: Optional[str] = None,
    order_direction: Optional[str] = "asc",
) -> List[Dict[str, Any]]:
    """First `limit` documents of a collection, optionally ordered by one field."""
    query = db.collection(_check_name("collection", collection))
    if order_by:
        direction = (order_direction or "asc").lower()
        if direction not in ORDER_DIRECTIONS:
            raise ValueError(f"orderDirection must be 'asc' or 'desc', got {order_direction!r}")
        query = query.order_by(order_by, direction=ORDER_DIRECTIONS[direction])
    docs = await query.limit(_check_limit(limit)).get()
    return [_snapshot(d) for d in docs]


async def query_where(
    db: firestore.AsyncClient,
    collection: str,
    field: str,
    operator: str,
    value: Any,
    limit: Any = DEFAULT_LIMIT,
) -> List[Dict[str, Any]]:
    """Documents matching a single field filter."""
    op = WHERE_OPERATORS.get(operator)
    if op is None:
        raise ValueError(
            f"Unsupported operator {operator!r}; expected one of {', '.join(WHERE_OPERATORS)}"
        )
    if op in _LIST_OPERATORS:
        value = _as_list_value(value)
    query = (
        db.collection(_check_name("collection", collection))
          .where(filter=FieldFilter(_check_name("field", field), op, value))
          .limit(_check_limit(limit))
    )
    docs = await query.get()
    return [_snapshot(d) for d in docs]

# ---------- writes ----------

async def create_document(
    db: firestore.AsyncClient,
    collection: str,
    data: Dict[str, Any],
    doc_id: Optional[str] = None,
) -> str:
    """Create a document and return its id (auto-generated when doc_id is not given)."""
    if not isinstance(data, dict):
        raise ValueError("data must be a JSON object")
    col = db.collection(_check_name("collection", collection))
    if doc_id:
        ref = col.document(doc_id)
        await ref.set(data)
    else:
        _, ref = await col.add(data)
    logger.info("Created %s/%s", collection, ref.id)
    return ref.id


async def update_document(
    db: firestore.AsyncClient,
    collection: str,
    doc_id: str,
    data: Dict[str, Any],
    merge: bool = True,
) -> None:
    """Merge-set by default; with merge=False a plain update that fails on a missing document."""
    if not isinstance(data, dict):
        raise ValueError("data must be a JSON object")
    ref = db.collection(_check_name("collection", collection)).document(_check_name("docId", doc_id))
    if merge:
        await ref.set(data, merge=True)
    else:
        await ref.update(data)
    logger.info("Updated %s/%s (merge=%s)", collection, doc_id, merge)


async def delete_document(db: firestore.AsyncClient, collection: str, doc_id: str) -> None:
    ref = db.collection(_check_name("collection", collection)).document(_check_name("docId", doc_id))
    await ref.delete()
    logger.info("Deleted %s/%s", collection, doc_id)
