from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from .models import AppState, Card, CollapseState, Zone


logger = logging.getLogger(__name__)


def set_collapse_state(state: AppState, zone_id: str, collapse: CollapseState | str) -> Zone:
    """Change one zone's collapse state, keeping at most one zone maximized.

    Maximizing a zone demotes the previously maximized zone to `normal` and
    records the new one in `current_max_zone_id`. Leaving `max` clears
    `current_max_zone_id` if it pointed at this zone.
    """
    collapse = CollapseState(collapse)
    zone = state.find_zone(zone_id)

    if collapse is CollapseState.MAX:
        # Demotes the recorded max zone and any stray maximized zone alike
        for other in state.zones:
            if other.id != zone_id and other.collapse_state is CollapseState.MAX:
                other.collapse_state = CollapseState.NORMAL
        state.current_max_zone_id = zone_id
    elif state.current_max_zone_id == zone_id:
        state.current_max_zone_id = None

    zone.collapse_state = collapse
    return zone


def sorted_items(zone: Zone) -> list:
    # sorted() is stable: equal `order` keeps insertion order
    return sorted(zone.items, key=lambda item: item.order)


def _doc_items(doc: Mapping[str, Any]) -> Iterable[Mapping[str, Any]]:
    zones = doc.get("zones")
    if not isinstance(zones, list):
        return
    for zone in zones:
        items = zone.get("items") if isinstance(zone, Mapping) else None
        if not isinstance(items, list):
            continue
        for item in items:
            if isinstance(item, Mapping):
                yield item


def image_blob_ids(state: Union[AppState, Mapping[str, Any]]) -> List[str]:
    """Blob ids referenced by cards, in board order, without duplicates.

    Works on the persisted document form so unvalidated boards are scanned
    the same way as validated ones.
    """
    doc = state.to_document() if isinstance(state, AppState) else state
    seen: set[str] = set()
    out: List[str] = []
    for item in _doc_items(doc):
        if item.get("type") != "card":
            continue
        blob_id = item.get("imageBlobId")
        if isinstance(blob_id, str) and blob_id and blob_id not in seen:
            seen.add(blob_id)
            out.append(blob_id)
    return out


def orphan_blob_ids(state: Union[AppState, Mapping[str, Any]], stored_ids: Iterable[str]) -> List[str]:
    referenced = set(image_blob_ids(state))
    return [blob_id for blob_id in stored_ids if blob_id not in referenced]


async def prune_orphan_blobs(state: AppState, store) -> List[str]:
    """Delete stored blobs no card references; returns the deleted ids.

    Blobs are never collected implicitly; this is the explicit cleanup step.
    """
    orphans = orphan_blob_ids(state, await store.list_blob_ids())
    for blob_id in orphans:
        await store.delete_blob(blob_id)
    if orphans:
        logger.info("Pruned %d orphaned image blob(s)", len(orphans))
    return orphans


def find_card(state: AppState, card_id: str) -> Card:
    for card in state.iter_cards():
        if card.id == card_id:
            return card
    raise KeyError(f"Unknown card: {card_id}")


def clear_card_image(state: AppState, card_id: str) -> Optional[str]:
    """Detach a card's image; returns the now-unreferenced blob id, if any.

    The blob itself stays in the store until deleted explicitly.
    """
    card = find_card(state, card_id)
    blob_id, card.image_blob_id = card.image_blob_id, None
    return blob_id
