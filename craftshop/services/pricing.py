from craftshop.config import settings


def shipping_fee(subtotal: float, fee: float | None = None) -> float:
    if subtotal <= 0:
        return 0.0
    return float(settings.shipping_fee if fee is None else fee)


def checkout_total(subtotal: float, fee: float | None = None) -> float:
    return round(subtotal + shipping_fee(subtotal, fee), settings.decimals)
