import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api import config
from src.api.assembler import assemble_board
from src.api.db import Database, close_db, get_db, init_db
from src.api.schemas import (
    APIMessage,
    CardUpdate,
    ChecklistItemUpdate,
    HealthStatus,
    ListUpdate,
    PartialUpdate,
)
from src.api.search import build_card_search

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Health", "description": "Service health checks."},
    {"name": "Boards", "description": "Boards, board detail and card search."},
    {"name": "Lists", "description": "Lists within a board and their ordering."},
    {"name": "Cards", "description": "Cards, their ordering, labels and members."},
    {"name": "Checklists", "description": "Card checklists and checklist items."},
]

error_responses: Dict[Any, Dict[str, Any]] = {
    400: {"model": APIMessage, "description": "Missing or malformed input"},
    500: {"model": APIMessage, "description": "Database or unexpected error"},
}

app = FastAPI(
    title="Kanban Board API",
    description=(
        "Backend API for a kanban task board: boards, lists, cards, labels, "
        "checklists and card members, with drag-and-drop reordering."
    ),
    version="1.0.0",
    openapi_tags=openapi_tags,
    responses=error_responses,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=APIMessage(message=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=APIMessage(message="Invalid request").model_dump(),
    )


def _not_found(entity: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity} not found")


def _bad_request(msg: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=msg)


def _server_error(msg: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=msg)


@contextmanager
def _handle_errors(message: str) -> Iterator[None]:
    """Log unexpected failures and answer them with a generic 500 `message`."""
    try:
        yield
    except HTTPException:
        raise
    except Exception:
        logger.exception(message)
        raise _server_error(message)


def _body_field(payload: Any, name: str) -> Any:
    # Bodies that are not JSON objects carry no fields.
    return payload.get(name) if isinstance(payload, dict) else None


def _require_title(payload: Any) -> str:
    title = _body_field(payload, "title")
    if not title or isinstance(title, (dict, list)):
        raise _bad_request("Title is required")
    return str(title)


def _next_position(db: Database, table: str, scope_column: str, scope_id: int) -> int:
    row = db.fetch_one(
        f"SELECT COALESCE(MAX(position), 0) AS max_pos FROM {table} WHERE {scope_column}=%s",
        [scope_id],
    )
    return int(row["max_pos"]) + 1


def _insert_and_reread(db: Database, table: str, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    columns = ", ".join(values)
    placeholders = ", ".join(["%s"] * len(values))
    created = db.execute_returning_one(
        f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING id",
        list(values.values()),
    )
    logger.debug("Created %s %s", table, created["id"])
    return db.fetch_one(f"SELECT * FROM {table} WHERE id=%s", [created["id"]])


def _update_and_reread(db: Database, table: str, row_id: int, payload: Optional[PartialUpdate]) -> Optional[Dict[str, Any]]:
    changes = payload.changes() if payload is not None else {}
    if changes:
        assignments = ", ".join(f"{col}=%s" for col in changes)
        db.execute(
            f"UPDATE {table} SET {assignments} WHERE id=%s",
            list(changes.values()) + [row_id],
        )
    # A missing row yields null rather than 404.
    return db.fetch_one(f"SELECT * FROM {table} WHERE id=%s", [row_id])


def _delete(db: Database, table: str, row_id: int) -> Response:
    db.execute(f"DELETE FROM {table} WHERE id=%s", [row_id])
    logger.debug("Deleted %s %s", table, row_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _apply_positions(db: Database, query: str, rows: List[List[Any]]) -> None:
    with db.transaction() as tx:
        for params in rows:
            if tx.execute(query, params) != 1:
                raise LookupError(f"No row matched reorder entry id={params[-1]}")


@app.on_event("startup")
def _startup() -> None:
    config.configure_logging()
    init_db()


@app.on_event("shutdown")
def _shutdown() -> None:
    close_db()


@app.get("/", response_model=HealthStatus, tags=["Health"], summary="Health check")
def health_check() -> HealthStatus:
    """Health check endpoint used by the frontend to verify backend availability."""
    return HealthStatus(status="ok")


# =========================
# Boards
# =========================

@app.get("/api/boards", tags=["Boards"], summary="List boards")
def list_boards(db: Database = Depends(get_db)) -> List[Dict[str, Any]]:
    """List all boards ordered by id."""
    with _handle_errors("Error fetching boards"):
        return db.fetch_all("SELECT * FROM boards ORDER BY id")


@app.post("/api/boards", status_code=status.HTTP_201_CREATED, tags=["Boards"], summary="Create board")
def create_board(payload: Any = Body(None), db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    """Create a board."""
    title = _require_title(payload)
    with _handle_errors("Error creating board"):
        return _insert_and_reread(db, "boards", {"title": title})


@app.get("/api/boards/{board_id}", tags=["Boards"], summary="Get board with lists and cards")
def get_board(board_id: int, db: Database = Depends(get_db)) -> Dict[str, Any]:
    """
    Return a board with its lists, the non-archived cards of each list and,
    per card, its labels, checklists (with items) and members.
    """
    with _handle_errors("Error fetching board"):
        board = db.fetch_one("SELECT * FROM boards WHERE id=%s", [board_id])
        if not board:
            raise _not_found("Board")

        lists = db.fetch_all("SELECT * FROM lists WHERE board_id=%s ORDER BY position", [board_id])
        cards = db.fetch_all(
            """
            SELECT * FROM cards
            WHERE list_id IN (SELECT id FROM lists WHERE board_id=%s) AND archived=FALSE
            ORDER BY position
            """,
            [board_id],
        )
        labels = db.fetch_all("SELECT * FROM labels WHERE board_id=%s", [board_id])
        card_labels = db.fetch_all("SELECT * FROM card_labels")
        checklists = db.fetch_all("SELECT * FROM checklists")
        checklist_items = db.fetch_all("SELECT * FROM checklist_items ORDER BY position")
        card_members = db.fetch_all("SELECT * FROM card_members")
        users = db.fetch_all("SELECT * FROM users")

        return assemble_board(
            board,
            lists,
            cards,
            labels,
            card_labels,
            checklists,
            checklist_items,
            card_members,
            users,
        )


@app.get("/api/boards/{board_id}/search", tags=["Boards"], summary="Search cards in a board")
def search_cards(
    board_id: int,
    q: Optional[str] = Query(None, description="Substring of the card title"),
    label_id: Optional[int] = Query(None, alias="labelId", description="Only cards carrying this label"),
    member_id: Optional[int] = Query(None, alias="memberId", description="Only cards assigned to this user"),
    due_before: Optional[str] = Query(None, alias="dueBefore", description="Due on or before this date"),
    due_after: Optional[str] = Query(None, alias="dueAfter", description="Due on or after this date"),
    db: Database = Depends(get_db),
) -> List[Dict[str, Any]]:
    """Search non-archived cards of a board, soonest due first, undated cards last."""
    query, params = build_card_search(board_id, q, label_id, member_id, due_before, due_after)
    with _handle_errors("Error searching cards"):
        return db.fetch_all(query, params)


# =========================
# Lists
# =========================

@app.post(
    "/api/boards/{board_id}/lists",
    status_code=status.HTTP_201_CREATED,
    tags=["Lists"],
    summary="Create list",
)
def create_list(board_id: int, payload: Any = Body(None), db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    """Append a list to the end of a board."""
    title = _require_title(payload)
    with _handle_errors("Error creating list"):
        position = _next_position(db, "lists", "board_id", board_id)
        return _insert_and_reread(db, "lists", {"board_id": board_id, "title": title, "position": position})


@app.post("/api/lists/reorder", status_code=status.HTTP_204_NO_CONTENT, tags=["Lists"], summary="Reorder lists")
def reorder_lists(payload: Any = Body(None), db: Database = Depends(get_db)) -> Response:
    """Apply new list positions atomically: either every entry is saved or none."""
    list_order = _body_field(payload, "listOrder")
    if not isinstance(list_order, list):
        raise _bad_request("listOrder must be an array")
    with _handle_errors("Error reordering lists"):
        _apply_positions(
            db,
            "UPDATE lists SET position=%s WHERE id=%s",
            [[_body_field(item, "position"), _body_field(item, "id")] for item in list_order],
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.put("/api/lists/{list_id}", tags=["Lists"], summary="Update list")
def update_list(list_id: int, payload: Optional[ListUpdate] = None, db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    """Rename a list."""
    with _handle_errors("Error updating list"):
        return _update_and_reread(db, "lists", list_id, payload)


@app.delete("/api/lists/{list_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Lists"], summary="Delete list")
def delete_list(list_id: int, db: Database = Depends(get_db)) -> Response:
    """Delete a list together with its cards."""
    with _handle_errors("Error deleting list"):
        return _delete(db, "lists", list_id)


# =========================
# Cards
# =========================

@app.post(
    "/api/lists/{list_id}/cards",
    status_code=status.HTTP_201_CREATED,
    tags=["Cards"],
    summary="Create card",
)
def create_card(list_id: int, payload: Any = Body(None), db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    """Append a card to the bottom of a list."""
    title = _require_title(payload)
    with _handle_errors("Error creating card"):
        position = _next_position(db, "cards", "list_id", list_id)
        return _insert_and_reread(db, "cards", {"list_id": list_id, "title": title, "position": position})


@app.post("/api/cards/reorder", status_code=status.HTTP_204_NO_CONTENT, tags=["Cards"], summary="Reorder / move cards")
def reorder_cards(payload: Any = Body(None), db: Database = Depends(get_db)) -> Response:
    """
    Apply new card placements atomically.

    Each entry carries the card's list as well as its position, so a card can
    be dragged into another list in the same request.
    """
    card_order = _body_field(payload, "cardOrder")
    if not isinstance(card_order, list):
        raise _bad_request("cardOrder must be an array")
    with _handle_errors("Error reordering cards"):
        _apply_positions(
            db,
            "UPDATE cards SET list_id=%s, position=%s WHERE id=%s",
            [
                [_body_field(item, "list_id"), _body_field(item, "position"), _body_field(item, "id")]
                for item in card_order
            ],
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.put("/api/cards/{card_id}", tags=["Cards"], summary="Update card")
def update_card(card_id: int, payload: Optional[CardUpdate] = None, db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    """Update a card. Fields left out of the body keep their stored values."""
    with _handle_errors("Error updating card"):
        return _update_and_reread(db, "cards", card_id, payload)


@app.delete("/api/cards/{card_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Cards"], summary="Delete card")
def delete_card(card_id: int, db: Database = Depends(get_db)) -> Response:
    """Delete a card with its checklists, label links and member links."""
    with _handle_errors("Error deleting card"):
        return _delete(db, "cards", card_id)


@app.post(
    "/api/cards/{card_id}/labels/{label_id}",
    status_code=status.HTTP_201_CREATED,
    tags=["Cards"],
    summary="Add label to card",
)
def add_card_label(card_id: int, label_id: int, db: Database = Depends(get_db)) -> Response:
    """Attach a label to a card. Attaching the same label twice fails."""
    with _handle_errors("Error adding label to card"):
        db.execute("INSERT INTO card_labels (card_id, label_id) VALUES (%s, %s)", [card_id, label_id])
    return Response(status_code=status.HTTP_201_CREATED)


@app.delete(
    "/api/cards/{card_id}/labels/{label_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Cards"],
    summary="Remove label from card",
)
def remove_card_label(card_id: int, label_id: int, db: Database = Depends(get_db)) -> Response:
    """Detach a label from a card."""
    with _handle_errors("Error removing label from card"):
        db.execute("DELETE FROM card_labels WHERE card_id=%s AND label_id=%s", [card_id, label_id])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post(
    "/api/cards/{card_id}/members/{user_id}",
    status_code=status.HTTP_201_CREATED,
    tags=["Cards"],
    summary="Assign member to card",
)
def add_card_member(card_id: int, user_id: int, db: Database = Depends(get_db)) -> Response:
    """Assign a user to a card. Assigning the same user twice fails."""
    with _handle_errors("Error assigning member to card"):
        db.execute("INSERT INTO card_members (card_id, user_id) VALUES (%s, %s)", [card_id, user_id])
    return Response(status_code=status.HTTP_201_CREATED)


@app.delete(
    "/api/cards/{card_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Cards"],
    summary="Remove member from card",
)
def remove_card_member(card_id: int, user_id: int, db: Database = Depends(get_db)) -> Response:
    """Unassign a user from a card."""
    with _handle_errors("Error removing member from card"):
        db.execute("DELETE FROM card_members WHERE card_id=%s AND user_id=%s", [card_id, user_id])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =========================
# Checklists
# =========================

@app.post(
    "/api/cards/{card_id}/checklists",
    status_code=status.HTTP_201_CREATED,
    tags=["Checklists"],
    summary="Create checklist",
)
def create_checklist(card_id: int, payload: Any = Body(None), db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    """Add a checklist to a card."""
    title = _require_title(payload)
    with _handle_errors("Error creating checklist"):
        return _insert_and_reread(db, "checklists", {"card_id": card_id, "title": title})


@app.post(
    "/api/checklists/{checklist_id}/items",
    status_code=status.HTTP_201_CREATED,
    tags=["Checklists"],
    summary="Create checklist item",
)
def create_checklist_item(
    checklist_id: int, payload: Any = Body(None), db: Database = Depends(get_db)
) -> Optional[Dict[str, Any]]:
    """Append an item to a checklist."""
    title = _require_title(payload)
    with _handle_errors("Error creating checklist item"):
        position = _next_position(db, "checklist_items", "checklist_id", checklist_id)
        return _insert_and_reread(
            db, "checklist_items", {"checklist_id": checklist_id, "title": title, "position": position}
        )


@app.put("/api/checklist-items/{item_id}", tags=["Checklists"], summary="Update checklist item")
def update_checklist_item(
    item_id: int, payload: Optional[ChecklistItemUpdate] = None, db: Database = Depends(get_db)
) -> Optional[Dict[str, Any]]:
    """Rename, tick/untick or move a checklist item; omitted fields are kept."""
    with _handle_errors("Error updating checklist item"):
        return _update_and_reread(db, "checklist_items", item_id, payload)


@app.delete(
    "/api/checklist-items/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Checklists"],
    summary="Delete checklist item",
)
def delete_checklist_item(item_id: int, db: Database = Depends(get_db)) -> Response:
    """Delete a checklist item."""
    with _handle_errors("Error deleting checklist item"):
        return _delete(db, "checklist_items", item_id)
