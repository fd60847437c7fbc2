from collections import defaultdict
from typing import Any, Dict, List, Optional

Row = Dict[str, Any]


def _group_by(rows: List[Row], key: str) -> Dict[Any, List[Row]]:
    grouped: Dict[Any, List[Row]] = defaultdict(list)
    for row in rows:
        grouped[row[key]].append(row)
    return grouped


# PUBLIC_INTERFACE
def assemble_board(
    board: Row,
    lists: List[Row],
    cards: List[Row],
    labels: List[Row],
    card_labels: List[Row],
    checklists: List[Row],
    checklist_items: List[Row],
    card_members: List[Row],
    users: List[Row],
) -> Dict[str, Any]:
    """
    Nest flat board rows into the board detail document.

    Row order of the inputs is kept at every level. A card's label or member
    link whose target is not among `labels` / `users` is kept as None.
    """
    labels_by_id = {label["id"]: label for label in labels}
    users_by_id = {user["id"]: user for user in users}
    cards_by_list = _group_by(cards, "list_id")
    links_by_card = _group_by(card_labels, "card_id")
    members_by_card = _group_by(card_members, "card_id")
    checklists_by_card = _group_by(checklists, "card_id")
    items_by_checklist = _group_by(checklist_items, "checklist_id")

    def card_detail(card: Row) -> Row:
        card_labels_out: List[Optional[Row]] = [
            labels_by_id.get(link["label_id"]) for link in links_by_card.get(card["id"], [])
        ]
        members_out: List[Optional[Row]] = [
            users_by_id.get(link["user_id"]) for link in members_by_card.get(card["id"], [])
        ]
        return {
            **card,
            "labels": card_labels_out,
            "checklists": [
                {**checklist, "items": list(items_by_checklist.get(checklist["id"], []))}
                for checklist in checklists_by_card.get(card["id"], [])
            ],
            "members": members_out,
        }

    return {
        "board": board,
        "lists": [
            {**lst, "cards": [card_detail(card) for card in cards_by_list.get(lst["id"], [])]}
            for lst in lists
        ],
        "labels": labels,
        "users": users,
    }
