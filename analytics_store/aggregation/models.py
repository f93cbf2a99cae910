"""
Event Models

Vocabulary and payload models for events recorded in the analytics store.
Documents are stored with camelCase field names.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ActivityAction(str, Enum):
    """User actions recorded in the activity log"""
    VIEW_MENU = "view_menu"
    VIEW_DISH = "view_dish"
    ADD_TO_CART = "add_to_cart"
    REMOVE_FROM_CART = "remove_from_cart"
    PLACE_ORDER = "place_order"
    SEARCH = "search"
    FILTER = "filter"
    LOGIN = "login"
    LOGOUT = "logout"


class TargetType(str, Enum):
    """What an activity refers to"""
    MENU = "menu"
    DISH = "dish"
    ORDER = "order"
    CATEGORY = "category"
    PAGE = "page"


class AuditAction(str, Enum):
    """Audited data changes"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LOGIN = "login"
    LOGOUT = "logout"


class OrderStatus(str, Enum):
    """Order statuses counted in dashboard rollups"""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SnapshotModel(BaseModel):
    """Base model serialized with camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderUser(SnapshotModel):
    """Denormalized customer summary"""
    id: int
    email: str
    first_name: str
    city: Optional[str] = None


class OrderMenu(SnapshotModel):
    """Denormalized menu line of an order"""
    id: int
    title: str
    price: float
    diet: Optional[str] = None
    theme: Optional[str] = None
    dishes: List[str] = Field(default_factory=list)


class OrderSnapshotIn(SnapshotModel):
    """Order as produced by the order service"""
    order_id: int
    order_number: str
    user: OrderUser
    order_date: datetime
    delivery_date: datetime
    delivery_hour: str = ""
    person_number: int = 1
    status: str = OrderStatus.PENDING.value
    menu_price: float = 0.0
    delivery_price: float = 0.0
    discount_amount: float = 0.0
    total_price: float
    menus: List[OrderMenu] = Field(default_factory=list)
    material_lending: bool = False

    def tags(self) -> List[str]:
        """Filter tags derived from the order"""
        tags = []
        if self.person_number >= 10:
            tags.append("large_party")
        if self.total_price >= 200:
            tags.append("vip")
        if self.delivery_date.weekday() >= 5:
            tags.append("weekend")
        return tags

    def to_document(self) -> Dict[str, Any]:
        document = self.model_dump(by_alias=True)
        document["tags"] = self.tags()
        return document
