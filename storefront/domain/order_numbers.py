from datetime import datetime, timezone

SEQUENCE_WIDTH = 6


def generate_order_number(existing_count: int, now: datetime | None = None) -> str:
    """ORD-<epoch в мс>-<порядковый номер, дополненный нулями до 6 знаков>"""
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return f"ORD-{millis}-{str(existing_count + 1).zfill(SEQUENCE_WIDTH)}"
