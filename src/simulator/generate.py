"""CLI entrypoint: simulate site traffic and load experiment events into the warehouse.

Usage:
    python -m src.simulator.generate
    python -m src.simulator.generate --visitors 5000 --days 30
    python -m src.simulator.generate --db data/analytics.duckdb
"""

import argparse
import logging

from src.ab.experiment import DEFAULT_REGISTRY
from src.simulator.config import SimulationConfig
from src.simulator.engine import simulate_traffic, variant_split
from src.warehouse.db import get_connection, init_db, insert_events


def main(args: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Simulate visitors through active A/B tests")
    parser.add_argument("--visitors", type=int, default=2000, help="Number of visitors")
    parser.add_argument("--visits", type=int, default=4, help="Maximum visits per visitor")
    parser.add_argument("--days", type=int, default=14, help="Simulation window in days")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--db", type=str, default="data/analytics.duckdb", help="Database path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    opts = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if opts.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    config = SimulationConfig(
        num_visitors=opts.visitors,
        max_visits=max(opts.visits, 1),
        days=opts.days,
        seed=opts.seed,
    )

    for exp in DEFAULT_REGISTRY.list_active():
        print(f"Experiment: {exp.name} ({exp.id}), {exp.traffic_allocation:.0%} traffic")
        for v in exp.variants:
            print(f"  {v.id}: weight {v.weight:g}")

    print(f"Simulating {config.num_visitors} visitors over {config.days} days (seed={config.seed})...")
    events = simulate_traffic(config, DEFAULT_REGISTRY)
    print(f"Generated {len(events)} events")

    print("Assignment split:")
    for exp_id, by_variant in sorted(variant_split(events).items()):
        total = sum(by_variant.values())
        for variant_id, count in sorted(by_variant.items()):
            print(f"  {exp_id}/{variant_id}: {count} ({count / total:.1%})")

    by_type = {}
    for e in events:
        by_type[e.event_type.value] = by_type.get(e.event_type.value, 0) + 1
    print("Event breakdown:")
    for etype, count in sorted(by_type.items()):
        print(f"  {etype}: {count}")

    print(f"\nLoading into warehouse at {opts.db}...")
    conn = get_connection(opts.db)
    init_db(conn)
    inserted, dupes = insert_events(conn, events)
    conn.close()

    print(f"Inserted: {inserted}, Duplicates skipped: {dupes}")
    print("Done.")


if __name__ == "__main__":
    main()
