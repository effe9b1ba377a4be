"""Time each component of a citytiles build."""

import asyncio
import logging
import time
import sys
import os

# Ensure the project root is on the path
sys.path.insert(0, os.path.dirname(__file__))

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

from citytiles.builder import CityModelBuilder


async def timed_build(name: str, lat: float, lon: float, half_width: float,
                      use_cache: bool = True):
    builder = CityModelBuilder(use_cache=use_cache)

    t0 = time.perf_counter()
    path = await builder.build(lat, lon, f"{name}.json", half_width=half_width)
    total = time.perf_counter() - t0

    print("\n" + "=" * 60)
    print(f"BUILD COMPLETE: {name} -> {path}")
    print("=" * 60)
    for label, dur in builder.timings.items():
        print(f"  {label}: {dur:.1f}s")
    print(f"  TOTAL: {total:.1f}s")
    if builder.last_stats is not None:
        stats = builder.last_stats
        print(f"  {stats.city_objects} CityObjects, {stats.vertices} vertices, "
              f"{stats.duplicates_skipped} duplicates skipped")
    print("=" * 60)


if __name__ == "__main__":
    no_cache = "--no-cache" in sys.argv

    # Amsterdam city centre, 200 m square
    asyncio.run(timed_build("amsterdam", 52.3676, 4.9041, 100.0,
                            use_cache=not no_cache))
