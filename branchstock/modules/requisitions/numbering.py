import random
from datetime import datetime, timezone
from typing import Optional


def generate_requisition_number(now: Optional[datetime] = None,
                                rng: Optional[random.Random] = None) -> str:
    """
    Número legible: REQ-<año><mes>-<4 dígitos al azar>.

    No se verifica existencia ni se reintenta: dos requisiciones del mismo
    mes pueden recibir el mismo número.
    """
    now = now or datetime.now(timezone.utc)
    suffix = (rng or random).randint(0, 9999)
    return f"REQ-{now.year}{now.month:02d}-{suffix:04d}"
