import secrets
import string
from typing import Optional, Union

from cart import summarize
from schemas import CartState, Order, OrderItem, ShippingAddress

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number() -> str:
    return "ORD-" + "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(8))


def build_order(
    cart_state: CartState,
    shipping_address: Union[ShippingAddress, dict],
    user_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> Order:
    """Turn the current cart into a pending order priced like the cart summary."""
    if not cart_state.items:
        raise ValueError("Cannot check out an empty cart")
    summary = summarize(cart_state)
    return Order(
        user_id=user_id,
        order_number=generate_order_number(),
        items=[
            OrderItem(
                product_id=item.product_id,
                name=item.name,
                price=item.price,
                quantity=item.quantity,
                image=item.image or None,
            )
            for item in cart_state.items
        ],
        subtotal=summary.subtotal,
        tax_amount=summary.tax,
        shipping_amount=summary.shipping,
        total_amount=summary.total,
        shipping_address=shipping_address,
        notes=notes,
    )
