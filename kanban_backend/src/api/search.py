from typing import Any, List, Optional, Tuple


# PUBLIC_INTERFACE
def build_card_search(
    board_id: int,
    q: Optional[str] = None,
    label_id: Optional[int] = None,
    member_id: Optional[int] = None,
    due_before: Optional[str] = None,
    due_after: Optional[str] = None,
) -> Tuple[str, List[Any]]:
    """
    Build the card search query for a board.

    Only non-archived cards are matched. Each given filter narrows the result;
    empty strings count as absent. Cards without a due date sort last.
    """
    where = ["l.board_id=%s", "c.archived=FALSE"]
    params: List[Any] = [board_id]
    if q:
        where.append("c.title LIKE %s")
        params.append(f"%{q}%")
    if label_id is not None:
        where.append("EXISTS (SELECT 1 FROM card_labels cl WHERE cl.card_id=c.id AND cl.label_id=%s)")
        params.append(label_id)
    if member_id is not None:
        where.append("EXISTS (SELECT 1 FROM card_members cm WHERE cm.card_id=c.id AND cm.user_id=%s)")
        params.append(member_id)
    if due_before:
        where.append("c.due_date<=%s")
        params.append(due_before)
    if due_after:
        where.append("c.due_date>=%s")
        params.append(due_after)

    query = (
        "SELECT c.* FROM cards c JOIN lists l ON c.list_id=l.id "
        f"WHERE {' AND '.join(where)} "
        "ORDER BY c.due_date IS NULL, c.due_date"
    )
    return query, params
