"""CLI entrypoint."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv as _load_dotenv

from waypoint import config
from waypoint.config import ConfigError
from waypoint.models import ActivityType, Coordinate, Mood, TransportMode, VibeType
from waypoint.pipeline import run
from waypoint.reporting import write_json_object
from waypoint.store import SqliteStore


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def _coordinate(text: str) -> Coordinate:
    try:
        return Coordinate.parse(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Suggest a surprise detour waypoint")
    parser.add_argument("--preflight", action="store_true", help="Run offline checks only")
    parser.add_argument("--origin", type=_coordinate, help="Current location as LAT,LON")
    parser.add_argument("--destination", type=_coordinate, help="Destination as LAT,LON")
    parser.add_argument(
        "--activity",
        choices=[a.value for a in ActivityType],
        default=ActivityType.OUTDOOR.value,
    )
    parser.add_argument(
        "--vibe",
        choices=[v.value for v in VibeType],
        default=VibeType.DISCOVERY.value,
    )
    parser.add_argument(
        "--mode",
        choices=[m.value for m in TransportMode],
        default=TransportMode.WALKING.value,
    )
    parser.add_argument("--seed", type=str, default=None, help="Semantic seed mixed into selection")
    parser.add_argument(
        "--stable-seed",
        action="store_true",
        help="Drop the epoch-seconds component so same-day runs reproduce",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Overall timeout in seconds")
    parser.add_argument("--max-places", type=int, default=config.MAX_PLACES_REQUESTS_PER_RUN)
    parser.add_argument("--max-routes", type=int, default=config.MAX_ROUTES_REQUESTS_PER_RUN)
    parser.add_argument("--no-cache", action="store_true")
    parser.add_argument(
        "--refresh-places",
        action="store_true",
        help="Ignore cached place searches but store fresh responses",
    )
    parser.add_argument(
        "--clear-excluded",
        action="store_true",
        help="Forget previously suggested places and exit",
    )
    parser.add_argument("--cache-path", type=str, default=config.CACHE_DB_PATH)
    parser.add_argument("--store-path", type=str, default=config.STORE_DB_PATH)
    parser.add_argument("--config", type=str, default=None, help="Path to waypoint_config.json")
    parser.add_argument("--out", type=str, default=None, help="Write genres JSON to this file")
    parser.add_argument("--reveal", type=str, default=None, metavar="GENRE_ID", help="Print the place behind a genre")
    return parser.parse_args(argv)


def run_preflight(api_key: Optional[str]) -> int:
    ok = True

    if api_key:
        print("API key: OK")
    else:
        print("API key: MISSING")
        ok = False

    try:
        config.WAYPOINT_CONFIG.validate()
        print("Engine config: OK")
    except ConfigError as exc:
        print(f"Engine config: FAIL ({exc})")
        ok = False

    empty = [key for key, types in config.MOOD_TYPES.items() if not types]
    if empty:
        print(f"Mood types: FAIL (empty for {', '.join(sorted(empty))})")
        ok = False
    else:
        print(f"Mood types: OK ({len(config.MOOD_TYPES)} moods)")

    print(
        "Request caps: max_places={max_places}, max_routes={max_routes}".format(
            max_places=config.MAX_PLACES_REQUESTS_PER_RUN,
            max_routes=config.MAX_ROUTES_REQUESTS_PER_RUN,
        )
    )
    print("Preflight: PASS" if ok else "Preflight: FAIL")
    return 0 if ok else 1


def run_reveal(store_path: str, genre_id: str) -> int:
    store = SqliteStore(store_path)
    try:
        candidate = store.get(genre_id)
    finally:
        store.close()
    if candidate is None:
        print(f"No place stored for genre {genre_id}", file=sys.stderr)
        return 1
    print(json.dumps(candidate.to_dict(), ensure_ascii=False, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        config.load_search_config(args.config)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 1

    api_key = (os.environ.get("GOOGLE_MAPS_API_KEY") or "").strip()

    if args.preflight:
        return run_preflight(api_key)

    if args.reveal:
        return run_reveal(args.store_path, args.reveal)

    if args.clear_excluded:
        store = SqliteStore(args.store_path)
        try:
            store.clear_excluded()
        finally:
            store.close()
        print("Exclusion list cleared.")
        return 0

    if args.origin is None or args.destination is None:
        print("--origin and --destination are required", file=sys.stderr)
        return 1
    if not api_key:
        print("Missing GOOGLE_MAPS_API_KEY in environment", file=sys.stderr)
        return 1

    cfg = config.WAYPOINT_CONFIG
    if args.stable_seed:
        cfg = replace(cfg, seed_includes_seconds=False)

    store = SqliteStore(args.store_path)
    try:
        result = run(
            api_key=api_key,
            origin=args.origin,
            destination=args.destination,
            mood=Mood(ActivityType(args.activity), VibeType(args.vibe)),
            transport_mode=TransportMode(args.mode),
            seed=args.seed,
            timeout=args.timeout,
            store=store,
            cache_db_path=args.cache_path,
            max_places=args.max_places,
            max_routes=args.max_routes,
            no_cache=args.no_cache,
            refresh_places=args.refresh_places,
            cfg=cfg,
        )
    except (ConfigError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        store.close()

    if args.out:
        write_json_object(args.out, result.summary)

    if not result.genres:
        print("No detour available for this trip.")
        return 0
    for genre in result.genres:
        print(f"{genre.id}  {genre.name} ({genre.category.value})")
    if args.out:
        print(f"Genres written to {args.out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
