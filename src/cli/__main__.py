# src/cli/__main__.py
import sys, json
from pathlib import Path

from pydantic import ValidationError

from src.core.errors import PricingError
from src.core.money import format_usd
from src.server.schemas.order import OrderPriceIn
from src.server.settings.config import settings
from src.services.delivery_quote import DeliveryQuoteEstimator
from src.services.distance_lookup import ZipTableDistanceLookup, build_distance_lookup
from src.services.order_service import make_price_draft

USAGE = """Usage:
  python -m src.cli quote <zip> [--address="..."] [--table=zip_distances.yaml]
  python -m src.cli price <order.json>

Examples:
  python -m src.cli quote 78701
  python -m src.cli quote 78701 --table=knowledge/delivery/zip_distances.yaml
  python -m src.cli price examples/order.json
"""

def _load_json(p: str):
    try:
        return json.loads(Path(p).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"Error reading JSON '{p}': {e}", file=sys.stderr)
        sys.exit(2)

def _cmd_quote(zip_code: str, flags: dict) -> None:
    if "table" in flags:
        lookup = ZipTableDistanceLookup.from_yaml(Path(flags["table"]))
    else:
        lookup = build_distance_lookup(settings)

    q = DeliveryQuoteEstimator(lookup, settings.delivery_config()).quote(zip_code, flags.get("address"))
    print(f"Destination : {q.destination}")
    print(f"Distance    : {q.distance_miles:.1f} mi")
    print(f"Fee         : {format_usd(q.fee)}")
    print(f"ETA         : {q.eta_weeks_min}-{q.eta_weeks_max} weeks")

def _cmd_price(order_path: str) -> None:
    data = _load_json(order_path)
    if not isinstance(data, dict):
        print(f"Invalid order JSON '{order_path}': expected an object, got {type(data).__name__}", file=sys.stderr)
        sys.exit(2)
    try:
        payload = OrderPriceIn(**data)
    except ValidationError as e:
        print(f"Invalid order JSON '{order_path}':\n{e}", file=sys.stderr)
        sys.exit(2)
    draft = make_price_draft(payload=payload, settings=settings)
    for key, value in draft["display"].items():
        print(f"{key:<10}: {value:>16}")
    sched = draft["payment_schedule"]
    print(f"{'deposit':<10}: {format_usd(sched['deposit_due']):>16}")
    print(f"{'final':<10}: {format_usd(sched['final_payment']):>16}")

def main():
    if len(sys.argv) < 3:
        print(USAGE, file=sys.stderr); sys.exit(1)

    cmd = sys.argv[1].lower()
    target = sys.argv[2]

    # parse optional --key=value flags (order-agnostic)
    flags = {}
    for arg in sys.argv[3:]:
        if arg.startswith("--") and "=" in arg:
            k, v = arg[2:].split("=", 1)
            flags[k] = v

    try:
        if cmd == "quote":
            _cmd_quote(target, flags)
            return
        if cmd == "price":
            _cmd_price(target)
            return
    except PricingError as e:
        print(f"Error ({e.code}): {e.message}", file=sys.stderr)
        sys.exit(3 if e.retryable else 1)

    print(USAGE, file=sys.stderr); sys.exit(1)

if __name__ == "__main__":
    main()
