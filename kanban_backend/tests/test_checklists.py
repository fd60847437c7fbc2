import pytest


@pytest.fixture
def checklist(client, card):
    return client.post(f"/api/cards/{card['id']}/checklists", json={"title": "Steps"}).json()


def test_create_checklist(client, card):
    response = client.post(f"/api/cards/{card['id']}/checklists", json={"title": "Steps"})
    assert response.status_code == 201
    assert response.json() == {"id": 1, "card_id": card["id"], "title": "Steps"}


def test_create_checklist_requires_title(client, card):
    response = client.post(f"/api/cards/{card['id']}/checklists", json={"title": ""})
    assert response.status_code == 400


def test_checklist_item_positions(client, checklist):
    first = client.post(f"/api/checklists/{checklist['id']}/items", json={"title": "one"})
    second = client.post(f"/api/checklists/{checklist['id']}/items", json={"title": "two"})

    assert first.status_code == 201
    assert first.json()["position"] == 1
    assert second.json()["position"] == 2
    assert not first.json()["is_complete"]


def test_create_checklist_item_requires_title(client, checklist):
    response = client.post(f"/api/checklists/{checklist['id']}/items", json={})
    assert response.status_code == 400
    assert response.json() == {"message": "Title is required"}


def test_update_checklist_item_is_partial(client, checklist):
    item = client.post(f"/api/checklists/{checklist['id']}/items", json={"title": "one"}).json()

    ticked = client.put(f"/api/checklist-items/{item['id']}", json={"is_complete": True}).json()
    assert ticked["is_complete"]
    assert ticked["title"] == "one"
    assert ticked["position"] == 1

    moved = client.put(
        f"/api/checklist-items/{item['id']}",
        json={"position": 4, "title": None, "is_complete": None},
    ).json()
    assert moved["position"] == 4
    assert moved["title"] == "one"
    assert moved["is_complete"]


def test_update_missing_checklist_item_returns_null(client):
    response = client.put("/api/checklist-items/5", json={"title": "x"})
    assert response.status_code == 200
    assert response.json() is None


def test_delete_checklist_item(client, database, checklist):
    item = client.post(f"/api/checklists/{checklist['id']}/items", json={"title": "one"}).json()

    response = client.delete(f"/api/checklist-items/{item['id']}")
    assert response.status_code == 204
    assert database.fetch_all("SELECT * FROM checklist_items") == []
