"""``carthief incursions`` – list incursion alerts for a safehouse facility set and heat tier."""
from __future__ import annotations

import json

from backend.app.core.safehouse_incursions import build_safehouse_incursion_events
from backend.app.world.safehouse_effects import compute_safehouse_facility_bonuses


def register(subparsers) -> None:
    p = subparsers.add_parser("incursions", help="List safehouse incursion alerts")
    p.add_argument("--facility", action="append", default=[], help="Installed facility id (repeatable)")
    p.add_argument("--heat-tier", type=str, default=None, help="calm | alert | lockdown")
    p.add_argument("--safehouse-name", type=str, default=None)
    p.add_argument("--safehouse-location", type=str, default=None)
    p.add_argument("--with-events", action="store_true", help="Include the paired mission events")
    p.set_defaults(func=run)


def run(args) -> int:
    safehouse = {
        "id": "cli-safehouse",
        "name": args.safehouse_name,
        "location": args.safehouse_location,
        "unlocked_amenities": args.facility,
    }
    batch = build_safehouse_incursion_events(None, {"safehouse": safehouse, "heat_tier": args.heat_tier})
    payload = {
        "alerts": [a.model_dump(mode="json") for a in batch.alerts],
        "facility_bonuses": compute_safehouse_facility_bonuses(safehouse).model_dump(mode="json"),
    }
    if args.with_events:
        payload["events"] = [e.model_dump(mode="json") for e in batch.events]
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0
