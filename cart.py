"""
Shopping cart state

`cart_reducer` is a pure function from (state, action) to a new state;
`CartStore` holds the current state and writes it to local storage after
every dispatch. Quantities never exceed the product's stock and the
totals are recomputed on every change.
"""
import json
import logging
from typing import List, Optional, Union

from pydantic import BaseModel, ValidationError

from config import FREE_SHIPPING_THRESHOLD, SHIPPING_FEE, STORAGE_KEYS, TAX_RATE
from images import get_product_image_url
from schemas import CartItem, CartState, Product

logger = logging.getLogger(__name__)

ADD_TO_CART = "ADD_TO_CART"
REMOVE_FROM_CART = "REMOVE_FROM_CART"
UPDATE_QUANTITY = "UPDATE_QUANTITY"
CLEAR_CART = "CLEAR_CART"
LOAD_CART = "LOAD_CART"


class CartSummary(BaseModel):
    subtotal: float
    shipping: float
    tax: float
    total: float
    free_shipping_remaining: float


def with_totals(items: List[CartItem]) -> CartState:
    return CartState(
        items=items,
        total_items=sum(item.quantity for item in items),
        total_amount=round(sum(item.price * item.quantity for item in items), 2),
    )


def _add(state: CartState, product: Product, quantity: int) -> CartState:
    if quantity < 1 or product.stock < 1:
        return state
    existing = next((item for item in state.items if item.product_id == product.id), None)
    if existing:
        new_quantity = min(existing.quantity + quantity, product.stock)
        items = [
            item.model_copy(update={"quantity": new_quantity, "stock": product.stock})
            if item.product_id == product.id else item
            for item in state.items
        ]
        return with_totals(items)

    new_item = CartItem(
        product_id=product.id,
        quantity=min(quantity, product.stock),
        name=product.name,
        price=product.price,
        image=get_product_image_url(product, 0),
        stock=product.stock,
    )
    return with_totals(state.items + [new_item])


def _update_quantity(state: CartState, product_id: str, quantity: int) -> CartState:
    items = []
    for item in state.items:
        if item.product_id == product_id:
            clamped = min(quantity, item.stock)
            if clamped < 1:
                continue
            item = item.model_copy(update={"quantity": clamped})
        items.append(item)
    return with_totals(items)


def _load_items(payload) -> List[CartItem]:
    """Validate saved items one by one; a bad entry is dropped, not the whole cart."""
    if isinstance(payload, CartState):
        return list(payload.items)
    if not isinstance(payload, dict):
        raise ValueError("Saved cart must be an object")
    items = []
    for raw in payload.get("items") or []:
        try:
            items.append(CartItem.model_validate(raw))
        except ValidationError as e:
            logger.warning("Dropping invalid cart item %r: %s", raw, e)
    return items


def cart_reducer(state: CartState, action: dict) -> CartState:
    kind = action.get("type")
    payload = action.get("payload")

    if kind == ADD_TO_CART:
        product = payload["product"]
        if not isinstance(product, Product):
            product = Product.model_validate(product)
        if not product.id:
            raise ValueError("Cannot add a product without an id")
        return _add(state, product, int(payload.get("quantity", 1)))

    if kind == REMOVE_FROM_CART:
        return with_totals([item for item in state.items if item.product_id != payload])

    if kind == UPDATE_QUANTITY:
        return _update_quantity(state, payload["productId"], int(payload["quantity"]))

    if kind == CLEAR_CART:
        return CartState()

    if kind == LOAD_CART:
        return with_totals(_load_items(payload))

    return state


def summarize(state: CartState) -> CartSummary:
    subtotal = state.total_amount
    if not state.items or subtotal > FREE_SHIPPING_THRESHOLD:
        shipping = 0.0
    else:
        shipping = SHIPPING_FEE
    tax = round(subtotal * TAX_RATE, 2)
    return CartSummary(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=round(subtotal + shipping + tax, 2),
        free_shipping_remaining=round(max(0.0, FREE_SHIPPING_THRESHOLD - subtotal), 2),
    )


class CartStore:
    def __init__(self, storage, key: str = STORAGE_KEYS["CART"]):
        self.storage = storage
        self.key = key
        self.state = CartState()
        saved = storage.get_item(key)
        if saved:
            try:
                self.state = cart_reducer(self.state, {"type": LOAD_CART, "payload": json.loads(saved)})
            except ValueError as e:
                logger.error("Failed to parse cart from storage: %s", e)

    def dispatch(self, action: dict) -> CartState:
        self.state = cart_reducer(self.state, action)
        self.storage.set_item(self.key, self.state.model_dump_json(by_alias=True))
        return self.state

    def add_to_cart(self, product: Union[Product, dict], quantity: int = 1) -> CartState:
        return self.dispatch({"type": ADD_TO_CART, "payload": {"product": product, "quantity": quantity}})

    def remove_from_cart(self, product_id: str) -> CartState:
        return self.dispatch({"type": REMOVE_FROM_CART, "payload": product_id})

    def update_quantity(self, product_id: str, quantity: int) -> CartState:
        return self.dispatch({"type": UPDATE_QUANTITY, "payload": {"productId": product_id, "quantity": quantity}})

    def clear_cart(self) -> CartState:
        return self.dispatch({"type": CLEAR_CART})

    def get_item(self, product_id: str) -> Optional[CartItem]:
        return next((item for item in self.state.items if item.product_id == product_id), None)

    def summary(self) -> CartSummary:
        return summarize(self.state)
