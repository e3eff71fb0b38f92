from __future__ import annotations

import json
import logging
import uuid
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    ValidationError,
    model_serializer,
)
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python


logger = logging.getLogger(__name__)


class IconType(str, Enum):
    EMOJI = "emoji"
    IMAGE = "image"


class CollapseState(str, Enum):
    MIN = "min"
    NORMAL = "normal"
    MAX = "max"


class _Document(BaseModel):
    # Persisted JSON uses camelCase keys; attributes stay snake_case.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class _SparseDocument(_Document):
    # Optional keys absent from the source document stay absent when dumped
    @model_serializer(mode="wrap")
    def _omit_unset_defaults(
        self, handler: SerializerFunctionWrapHandler, info: SerializationInfo
    ) -> Dict[str, Any]:
        data = handler(self)
        for name, field in type(self).model_fields.items():
            if name == "type" or name in self.model_fields_set:
                continue
            if getattr(self, name) == field.default:
                data.pop(field.alias if info.by_alias and field.alias else name, None)
        return data


class TaskType(_Document):
    """Catalog entry a card points at through `task_type_id`."""

    id: str
    name: str
    icon: str = Field(description="Emoji character, or image data when icon_type is image")
    icon_type: IconType = IconType.EMOJI


class Deadline(_SparseDocument):
    date: str = Field(description="Local calendar date, YYYY-MM-DD")
    hour: Optional[int] = Field(default=0, description="Local hour of day, 0-23")


class Card(_SparseDocument):
    """
    A task inside a zone.

    `image_blob_id`, when set, is the key of a blob in the store's `images`
    table. The card references the blob; it does not own it.
    """

    type: Literal["card"] = "card"
    id: str
    task_type_id: str
    text: str = ""
    image_blob_id: Optional[str] = None
    deadline: Optional[Deadline] = None
    order: int = 0


class Divider(_SparseDocument):
    type: Literal["divider"] = "divider"
    id: str
    text: str = ""
    order: int = 0


ZoneItem = Annotated[Union[Card, Divider], Field(discriminator="type")]


class Zone(_Document):
    id: str
    name: str
    color: str = "#409eff"
    collapse_state: CollapseState = CollapseState.NORMAL
    items: List[ZoneItem] = Field(default_factory=list)
    order: int = 0


class AppState(_Document):
    """
    The whole board: the single document persisted under the `main` key.

    Fields
    - title: board heading.
    - task_types: catalog of task types referenced by cards.
    - zones: ordered zones, each owning its cards and dividers.
    - global_min_toggle / global_normal_toggle: board-wide collapse toggles.
    - current_max_zone_id: the one zone allowed in `max` collapse state.
    - selected_zone_id: zone new cards are added to.
    - dark_mode: presentation preference, stored with the board.
    """

    title: str = "TODO LIST"
    task_types: List[TaskType] = Field(default_factory=list)
    zones: List[Zone] = Field(default_factory=list)
    global_min_toggle: bool = False
    global_normal_toggle: bool = False
    current_max_zone_id: Optional[str] = None
    selected_zone_id: Optional[str] = None
    dark_mode: bool = False

    # Set when the document did not match the schema and was kept verbatim
    _unvalidated: bool = PrivateAttr(default=False)

    @classmethod
    def default(cls) -> "AppState":
        """Starter board used when nothing has been persisted yet."""
        return cls(
            task_types=[
                TaskType(id="1", name="採集製作", icon="🔨"),
                TaskType(id="2", name="主線", icon="⭐"),
                TaskType(id="3", name="職業", icon="💼"),
                TaskType(id="4", name="其他", icon="📋"),
            ],
        )

    def to_document(self) -> Dict[str, Any]:
        """Detached, JSON-compatible copy of the board (camelCase keys)."""
        if not self._unvalidated:
            return self.model_dump(mode="json", by_alias=True, warnings=False)
        doc = {
            field.alias or name: getattr(self, name)
            for name, field in type(self).model_fields.items()
            if name in self.model_fields_set
        }
        doc.update(self.model_extra or {})
        return to_jsonable_python(doc, by_alias=True)

    def find_zone(self, zone_id: str) -> Zone:
        for zone in self.zones:
            if zone.id == zone_id:
                return zone
        raise KeyError(f"Unknown zone: {zone_id}")

    def iter_cards(self):
        for zone in self.zones:
            for item in zone.items:
                if isinstance(item, Card):
                    yield item


def create_default_state() -> AppState:
    return AppState.default()


def coerce_state(raw: Any) -> AppState:
    """Build an AppState from a parsed JSON document.

    Documents that match the schema exactly (strict JSON types, no coercion)
    are validated. Anything else that parses as a JSON object is kept
    verbatim, unvalidated, and dumps back to the same keys and values.
    Non-object documents raise TypeError.
    """
    if not isinstance(raw, dict):
        raise TypeError(f"State document must be a JSON object, got {type(raw).__name__}")
    try:
        return AppState.model_validate_json(json.dumps(raw), strict=True)
    except ValidationError as ex:
        logger.warning("State document does not match schema; keeping it unvalidated: %s", ex)
        state = AppState.model_construct(**raw)
        state._unvalidated = True
        return state


def new_item_id() -> str:
    """Opaque identifier for zones, items and image blobs."""
    return uuid.uuid4().hex
