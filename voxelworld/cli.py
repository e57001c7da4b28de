from __future__ import annotations

import argparse
import logging

from voxelworld.app import run_app
from voxelworld.config import (
    APP_VERSION,
    CHUNK,
    DEFAULT_SERVER_URL,
    EVICT_MARGIN,
    LOG_FORMAT,
    MOVE_SPEED,
    VIEW_RADIUS,
    WORLD_BASE_BLOCK,
    WORLD_SEED,
)
from voxelworld.world.blocks import Block
from voxelworld.world.chunk_manager import StreamParams
from voxelworld.world.fetcher import FetchParams
from voxelworld.world.world import WorldParams

def _block_arg(value: str) -> int:
    try:
        return int(Block[value.upper()])
    except KeyError:
        pass
    try:
        return int(Block(int(value)))
    except ValueError:
        raise argparse.ArgumentTypeError(f"unknown block: {value!r}")

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="voxelworld", description=f"Infinite streamed voxel world (ModernGL + pygame) v{APP_VERSION}")
    p.add_argument("--server", default=DEFAULT_SERVER_URL, help=f"chunk generator base URL (default: {DEFAULT_SERVER_URL})")
    p.add_argument("--seed", default=WORLD_SEED, help=f"world seed string (default: {WORLD_SEED!r})")
    p.add_argument("--chunk", type=int, default=CHUNK, help=f"voxel cube side per chunk (default: {CHUNK})")
    p.add_argument("--view-radius", type=int, default=VIEW_RADIUS, help=f"chunks kept around the camera in X/Z (default: {VIEW_RADIUS})")
    p.add_argument("--evict-margin", type=int, default=EVICT_MARGIN, help=f"extra chunks kept before eviction (default: {EVICT_MARGIN})")
    p.add_argument("--base-block", type=_block_arg, default=WORLD_BASE_BLOCK, help="base block name or id (default: stone)")
    p.add_argument("--speed", type=float, default=MOVE_SPEED, help=f"fly speed in world units / sec (default: {MOVE_SPEED})")
    p.add_argument("--no-hulls", dest="hulls", action="store_false", default=True, help="hide chunk debug hulls")
    p.add_argument("--debug", action="store_true", help="enable debug overlay (HUD + logs)")
    args = p.parse_args(argv)
    if args.chunk <= 1:
        p.error("--chunk must be > 1")
    if args.view_radius < 0 or args.evict_margin < 0:
        p.error("--view-radius and --evict-margin must be >= 0")
    return args

def build_params(args: argparse.Namespace) -> WorldParams:
    stream = StreamParams(
        chunk=int(args.chunk),
        view_radius=int(args.view_radius),
        evict_margin=int(args.evict_margin),
        base_block=int(args.base_block),
    )
    fetch = FetchParams(
        base_url=str(args.server),
        chunk=int(args.chunk),
        seed=str(args.seed),
        base_block=int(args.base_block),
    )
    return WorldParams(stream=stream, fetch=fetch, hulls=bool(args.hulls))

def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    run_app(params=build_params(args), speed=float(args.speed), debug=bool(args.debug))
