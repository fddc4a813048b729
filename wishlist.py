import json
import logging
from typing import Union

from config import STORAGE_KEYS
from schemas import Product, WishlistState

logger = logging.getLogger(__name__)

ADD_TO_WISHLIST = "ADD_TO_WISHLIST"
REMOVE_FROM_WISHLIST = "REMOVE_FROM_WISHLIST"
CLEAR_WISHLIST = "CLEAR_WISHLIST"
LOAD_WISHLIST = "LOAD_WISHLIST"


def wishlist_reducer(state: WishlistState, action: dict) -> WishlistState:
    kind = action.get("type")
    payload = action.get("payload")

    if kind == ADD_TO_WISHLIST:
        product = payload if isinstance(payload, Product) else Product.model_validate(payload)
        if any(item.id == product.id for item in state.items):
            return state
        return WishlistState(items=state.items + [product])

    if kind == REMOVE_FROM_WISHLIST:
        return WishlistState(items=[item for item in state.items if item.id != payload])

    if kind == CLEAR_WISHLIST:
        return WishlistState()

    if kind == LOAD_WISHLIST:
        return payload if isinstance(payload, WishlistState) else WishlistState.model_validate(payload)

    return state


class WishlistStore:
    """Wishlist state persisted to local storage on every change."""

    def __init__(self, storage, key: str = STORAGE_KEYS["WISHLIST"]):
        self.storage = storage
        self.key = key
        self.state = WishlistState()
        saved = storage.get_item(key)
        if saved:
            try:
                self.state = wishlist_reducer(self.state, {"type": LOAD_WISHLIST, "payload": json.loads(saved)})
            except ValueError as e:
                logger.error("Failed to parse wishlist from storage: %s", e)

    def dispatch(self, action: dict) -> WishlistState:
        self.state = wishlist_reducer(self.state, action)
        self.storage.set_item(self.key, self.state.model_dump_json(by_alias=True))
        return self.state

    def add_to_wishlist(self, product: Union[Product, dict]) -> WishlistState:
        return self.dispatch({"type": ADD_TO_WISHLIST, "payload": product})

    def remove_from_wishlist(self, product_id: str) -> WishlistState:
        return self.dispatch({"type": REMOVE_FROM_WISHLIST, "payload": product_id})

    def clear_wishlist(self) -> WishlistState:
        return self.dispatch({"type": CLEAR_WISHLIST})

    def is_in_wishlist(self, product_id: str) -> bool:
        return any(item.id == product_id for item in self.state.items)

    def toggle(self, product: Union[Product, dict]) -> bool:
        """Add or remove the product; returns True when it ends up in the wishlist."""
        if not isinstance(product, Product):
            product = Product.model_validate(product)
        if self.is_in_wishlist(product.id):
            self.remove_from_wishlist(product.id)
            return False
        self.add_to_wishlist(product)
        return True
