#!/usr/bin/env python3
"""Dump the aggregated sightings for one query.

Runs a single refresh against every configured provider and prints the
merged observations and inferred travel links, so provider payload
changes and heuristic misses are easy to spot.

Usage
-----
::

    export SIGHTINGS_WSF_ACCESS_CODE="..."   # optional, enables vessels
    python scripts/dump_sightings.py --focus 2025-01-21T12:00 --taxon "Orcinus orca"

Options::

    --focus TIME         Focus instant (ISO-8601, naive = local time)
    --time-scale DUR     Window radius as ISO-8601 duration (default P1D)
    --taxon NAME         Taxon query (default Cetacea)
    --bbox W,S,E,N       Extent in degrees (default: whole world)
    --json               Output as machine-readable JSON
    --output FILE        Write JSON output to FILE instead of stdout
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pysightings import Extent, SightingsClient, SightingsConfig  # noqa: E402
from pysightings.models import WORLD  # noqa: E402


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _parse_bbox(value: str) -> Extent:
    try:
        west, south, east, north = (float(part) for part in value.split(","))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected W,S,E,N, got {value!r}") from exc
    return Extent.from_bbox((west, south, east, north))


def _format_observation(obs: Any) -> str:
    when = obs.observed_at.isoformat() if obs.observed_at else "-"
    label = obs.taxon or obs.name or "?"
    tags = obs.tags
    extras = [str(part) for part in (tags.ecotype, tags.pod, tags.heading) if part]
    if tags.individuals:
        extras.append(",".join(tags.individuals))
    suffix = f"  [{' '.join(extras)}]" if extras else ""
    return f"  {obs.id:<28} {when:<26} {obs.latitude:9.4f} {obs.longitude:10.4f}  {label}{suffix}"


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Dump the aggregated sightings for one query.",
    )
    parser.add_argument("--focus", help="Focus instant (ISO-8601; naive values are local time)")
    parser.add_argument("--time-scale", default="P1D", help="Window radius as ISO-8601 duration")
    parser.add_argument("--taxon", help="Taxon query (scientific or common name)")
    parser.add_argument("--bbox", type=_parse_bbox, default=WORLD, help="Extent as W,S,E,N degrees")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--output", "-o", help="Write JSON output to FILE instead of stdout")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = SightingsConfig.from_env()
    params = {"t": args.focus or datetime.now(UTC).isoformat(), "d": args.time_scale}
    if args.taxon:
        params["q"] = args.taxon

    async with SightingsClient(config, extent=args.bbox, params=params) as client:
        observations = client.observations
        travels = client.travels
        result: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "query": client.deep_link_params(),
            "failed_sources": sorted(client.pipeline.failed_sources),
            "observations": [obs.model_dump(mode="json") for obs in observations],
            "travels": [travel.model_dump(mode="json") for travel in travels],
        }

    if args.json_mode or args.output:
        payload = json.dumps(result, indent=2, ensure_ascii=False)
        if args.output:
            Path(args.output).write_text(payload, encoding="utf-8")
            print(f"JSON written to {args.output}", file=sys.stderr)
        else:
            print(payload)
        return

    out: list[str] = [_section("pysightings dump")]
    out.append(f"  time      : {result['timestamp']}")
    out.append(f"  query     : {result['query']}")
    if result["failed_sources"]:
        out.append(f"  failed    : {', '.join(result['failed_sources'])}")

    out.append(_section(f"OBSERVATIONS ({len(observations)})"))
    out.extend(_format_observation(obs) for obs in sorted(observations, key=lambda obs: obs.id))

    out.append(_section(f"TRAVELS ({len(travels)})"))
    for travel in travels:
        out.append(
            f"  {travel.from_id} -> {travel.to_id}  {travel.distance_m:8.0f} m  "
            f"{travel.elapsed}  {travel.speed_m_per_h:7.0f} m/h"
        )
    print("\n".join(out))


if __name__ == "__main__":
    asyncio.run(main())
