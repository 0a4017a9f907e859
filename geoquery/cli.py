"""CLI entry point for watching a radius query.

Usage:
    python -m geoquery.cli --collection locations --field geo \
        --lat 35.681236 --lon 139.767125 --radius-km 1 --strict --where isVisible=true
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import aclosing

from dotenv import load_dotenv

from geoquery.config import GeoQueryConfig
from geoquery.contracts.geo_point import GeoFirePoint
from geoquery.persistence.filters import equality_query_builder, parse_equality_filters
from geoquery.persistence.firestore_client import get_firestore_client
from geoquery.persistence.geo_collection import GeoCollectionReference

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Watch documents within a radius")
    parser.add_argument("--collection", required=True, help="Firestore collection path")
    parser.add_argument("--field", default="geo", help="Field holding {geopoint, geohash}")
    parser.add_argument("--lat", type=float, required=True, help="Center latitude")
    parser.add_argument("--lon", type=float, required=True, help="Center longitude")
    parser.add_argument("--radius-km", type=float, required=True, help="Detection radius in km")
    parser.add_argument("--strict", action="store_true", help="Drop documents outside the radius")
    parser.add_argument(
        "--where", action="append", default=[], metavar="FIELD=VALUE",
        help="Equality filter, repeatable",
    )
    parser.add_argument("--once", action="store_true", help="Read once instead of watching")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _print_results(results) -> None:
    print(f"--- {len(results)} documents ---")
    for result in results:
        print(f"{result.distance_from_center_in_km:10.3f} km  {result.id}")


async def run(args: argparse.Namespace) -> None:
    geo = GeoCollectionReference(
        get_firestore_client().collection(args.collection),
        config=GeoQueryConfig.from_env(),
    )
    kwargs = dict(
        center=GeoFirePoint(latitude=args.lat, longitude=args.lon),
        radius_in_km=args.radius_km,
        field=args.field,
        query_builder=equality_query_builder(parse_equality_filters(args.where)),
        strict_mode=args.strict,
    )

    if args.once:
        _print_results(await geo.fetch_within_with_distance(**kwargs))
        return

    async with aclosing(geo.subscribe_within_with_distance(**kwargs)) as results:
        async for ranked in results:
            _print_results(ranked)


def main() -> None:
    load_dotenv()
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
