from __future__ import annotations

import pytest

from state.models import (
    AppState,
    Card,
    CollapseState,
    Divider,
    IconType,
    Zone,
    coerce_state,
    create_default_state,
    new_item_id,
)


def test_default_state_catalog_and_flags():
    state = create_default_state()
    assert state.title == "TODO LIST"
    assert [t.id for t in state.task_types] == ["1", "2", "3", "4"]
    assert [t.icon for t in state.task_types] == ["🔨", "⭐", "💼", "📋"]
    assert all(t.icon_type is IconType.EMOJI for t in state.task_types)
    assert state.zones == []
    assert state.global_min_toggle is False
    assert state.global_normal_toggle is False
    assert state.current_max_zone_id is None
    assert state.selected_zone_id is None
    assert state.dark_mode is False


def test_default_state_is_deterministic_and_independent():
    a = create_default_state()
    b = create_default_state()
    assert a.to_document() == b.to_document()
    a.task_types.pop()
    assert len(b.task_types) == 4


def test_document_uses_camel_case_keys():
    state = AppState(
        zones=[
            Zone(
                id="z1",
                name="Inbox",
                items=[Card(id="c1", task_type_id="1", text="Mine ore", image_blob_id="img-1")],
            )
        ],
        current_max_zone_id="z1",
    )
    doc = state.to_document()
    assert "currentMaxZoneId" in doc and doc["currentMaxZoneId"] == "z1"
    assert "taskTypes" in doc and "darkMode" in doc
    card = doc["zones"][0]["items"][0]
    assert card["type"] == "card"
    assert card["taskTypeId"] == "1"
    assert card["imageBlobId"] == "img-1"
    assert doc["zones"][0]["collapseState"] == "normal"


def test_items_are_discriminated_by_type():
    state = AppState.model_validate(
        {
            "zones": [
                {
                    "id": "z1",
                    "name": "Main",
                    "color": "#ff0000",
                    "collapseState": "min",
                    "order": 0,
                    "items": [
                        {"type": "divider", "id": "d1", "text": "---", "order": 0},
                        {
                            "type": "card",
                            "id": "c1",
                            "taskTypeId": "2",
                            "text": "Boss fight",
                            "deadline": {"date": "2024-05-01", "hour": 21},
                            "order": 1,
                        },
                    ],
                }
            ]
        }
    )
    zone = state.zones[0]
    assert zone.collapse_state is CollapseState.MIN
    assert isinstance(zone.items[0], Divider)
    assert isinstance(zone.items[1], Card)
    assert zone.items[1].deadline.hour == 21


def test_unknown_keys_survive_round_trip():
    doc = create_default_state().to_document()
    doc["futureField"] = {"x": 1}
    again = AppState.model_validate(doc).to_document()
    assert again["futureField"] == {"x": 1}


def test_coerce_state_keeps_nonconforming_object():
    raw = {"title": "Odd", "zones": "not-a-list", "darkMode": True}
    state = coerce_state(raw)
    assert state.title == "Odd"
    assert state.zones == "not-a-list"
    assert state.to_document()["zones"] == "not-a-list"


def test_coerce_state_rejects_non_object():
    with pytest.raises(TypeError):
        coerce_state(["not", "an", "object"])


def test_find_zone_unknown_raises():
    with pytest.raises(KeyError):
        create_default_state().find_zone("missing")


def test_new_item_id_is_unique():
    ids = {new_item_id() for _ in range(50)}
    assert len(ids) == 50


def test_card_without_image_dumps_without_image_key():
    raw = {
        "zones": [
            {
                "id": "z1",
                "name": "Main",
                "items": [{"id": "c1", "type": "card", "taskTypeId": "1"}],
            }
        ]
    }
    state = coerce_state(raw)
    assert isinstance(state.zones[0].items[0], Card)
    assert state.to_document()["zones"][0]["items"] == [{"id": "c1", "type": "card", "taskTypeId": "1"}]


def test_coerce_state_keeps_string_hour_verbatim():
    item = {"id": "c1", "type": "card", "taskTypeId": "1", "deadline": {"date": "2024-05-01", "hour": "5"}}
    raw = {"title": "T", "zones": [{"id": "z1", "name": "Main", "items": [item]}]}
    doc = coerce_state(raw).to_document()
    assert doc == raw
    assert doc["zones"][0]["items"][0]["deadline"]["hour"] == "5"
