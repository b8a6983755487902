from __future__ import annotations

import argparse
import json
import time
from dataclasses import dataclass
from pathlib import Path
from urllib import request


@dataclass
class ReplayContext:
    """Runtime context for distance replay requests."""

    api_base: str
    interval_sec: float
    fire_in_range: bool


def post_json(url: str, payload: dict) -> dict:
    data = json.dumps(payload).encode("utf-8")
    req = request.Request(
        url=url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    with request.urlopen(req, timeout=10) as resp:
        return json.loads(resp.read().decode("utf-8"))


def load_distances(path: Path) -> list[float | None]:
    """One reading per line; blank lines or `null` mean no reading."""
    readings: list[float | None] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        value = line.strip()
        if not value or value.lower() == "null":
            readings.append(None)
            continue
        readings.append(float(value))
    return readings


def replay_reading(context: ReplayContext, index: int, distance: float | None) -> None:
    gate = post_json(f"{context.api_base}/v1/sensor/distance", {"distance": distance})
    print(f"[READING {index}] distance={distance} -> can_fire={gate['can_fire']}")
    if not (context.fire_in_range and gate["can_fire"]):
        return
    try:
        outcome = post_json(f"{context.api_base}/v1/fire", {})
    except OSError as error:
        print(f"[FIRE {index}] rejected: {error}")
        return
    print(
        f"[FIRE {index}] incident={outcome['incident_id']} "
        f"source={outcome['capture']['source']}"
    )


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--distances",
        default="",
        help="Text file with one distance reading per line",
    )
    parser.add_argument(
        "--values",
        default="",
        help="Comma separated readings, e.g. 25,18,12",
    )
    parser.add_argument("--api-base", default="http://127.0.0.1:8000")
    parser.add_argument("--interval", type=float, default=0.5)
    parser.add_argument(
        "--fire",
        action="store_true",
        help="Request a fire whenever the gate opens",
    )
    args = parser.parse_args()

    if args.distances:
        distances_path = Path(args.distances)
        if not distances_path.exists():
            raise SystemExit(f"distances file not found: {distances_path}")
        readings = load_distances(distances_path)
    elif args.values:
        readings = [float(item) for item in args.values.split(",") if item.strip()]
    else:
        raise SystemExit("pass --distances or --values")

    if not readings:
        raise SystemExit("no readings found")

    context = ReplayContext(
        api_base=args.api_base,
        interval_sec=args.interval,
        fire_in_range=args.fire,
    )
    print(f"[INFO] readings={len(readings)}, api={context.api_base}")

    for idx, distance in enumerate(readings):
        replay_reading(context=context, index=idx, distance=distance)
        time.sleep(context.interval_sec)

    print("[DONE]")
    print(f"Check history: {context.api_base}/v1/history")


if __name__ == "__main__":
    main()
