from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder

# Money leaves the API as "12.50", never as a float.
MONEY_ENCODER = {Decimal: str}


def ok(message: str, results: Any = None, **extra: Any) -> dict[str, Any]:
    return jsonable_encoder(
        {"ok": True, "message": message, "results": results, **extra},
        custom_encoder=MONEY_ENCODER,
    )
