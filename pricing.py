from decimal import Decimal


def discounted_price(price: Decimal, discount: int) -> Decimal:
    """Unit price after applying a whole-number percent discount."""
    price = Decimal(price)
    return price - price * Decimal(discount) / Decimal(100)


def order_total(price: Decimal, discount: int, quantity: int) -> Decimal:
    return discounted_price(price, discount) * quantity
