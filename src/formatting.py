from src.models import PriceQuote


def _group_indian(digits: str) -> str:
    # Last three digits, then groups of two: 1,75,000 / 12,34,56,789.
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_inr(amount: int | None) -> str:
    if amount is None:
        return "No data"
    sign = "-" if amount < 0 else ""
    return f"{sign}₹{_group_indian(str(abs(int(amount))))}"


def format_usd(amount: int | None) -> str:
    if amount is None:
        return "No data"
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(int(amount)):,}"


def format_quote_price(quote: PriceQuote, currency: str = "INR") -> str:
    if currency.upper() == "USD":
        text = format_usd(quote.price_usd)
    else:
        text = format_inr(quote.price_inr)
    if not quote.is_live:
        text += " (estimate)"
    return text
