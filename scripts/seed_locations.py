"""Seed a collection with random locations around a center point.

Usage:
    python scripts/seed_locations.py --collection locations --count 50 \
        --lat 35.681236 --lon 139.767125 --radius-km 3
"""

import argparse
import asyncio
import logging
import math
import random
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from geoquery.contracts.geo_point import GeoFirePoint  # noqa: E402
from geoquery.geo.geohash import KM_PER_DEGREE  # noqa: E402
from geoquery.persistence.firestore_client import get_firestore_client  # noqa: E402
from geoquery.persistence.geo_collection import GeoCollectionReference  # noqa: E402

logger = logging.getLogger(__name__)

# Tokyo Station
DEFAULT_CENTER = (35.681236, 139.767125)


def random_point(lat: float, lon: float, radius_km: float, rng: random.Random) -> tuple[float, float]:
    """Uniform random point in a disc (equirectangular approximation)."""
    distance = radius_km * math.sqrt(rng.random())
    bearing = rng.uniform(0, 2 * math.pi)
    dlat = distance * math.cos(bearing) / KM_PER_DEGREE
    dlon = distance * math.sin(bearing) / (KM_PER_DEGREE * math.cos(math.radians(lat)))
    return lat + dlat, lon + dlon


async def seed(args: argparse.Namespace) -> int:
    geo = GeoCollectionReference(get_firestore_client().collection(args.collection))
    rng = random.Random(args.seed)
    for i in range(args.count):
        lat, lon = random_point(args.lat, args.lon, args.radius_km, rng)
        point = GeoFirePoint(latitude=lat, longitude=lon)
        doc_ref = await geo.add({
            "name": f"location-{i:03d}",
            "isVisible": rng.random() > 0.2,
            args.field: point.data,
        })
        logger.debug("Added %s at %s", doc_ref.id, point.geohash)
    return args.count


def main():
    load_dotenv()
    parser = argparse.ArgumentParser(description="Seed random geo documents")
    parser.add_argument("--collection", required=True)
    parser.add_argument("--field", default="geo")
    parser.add_argument("--count", type=int, default=20)
    parser.add_argument("--lat", type=float, default=DEFAULT_CENTER[0])
    parser.add_argument("--lon", type=float, default=DEFAULT_CENTER[1])
    parser.add_argument("--radius-km", type=float, default=2.0)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    count = asyncio.run(seed(args))
    logger.info("Seeded %d documents into %s", count, args.collection)


if __name__ == "__main__":
    main()
