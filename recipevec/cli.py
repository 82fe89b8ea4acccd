# recipevec/cli.py
"""
Command line runner for the recipe vector store.

- build:  download sources, embed, write the three store artifacts
- filter: re-apply the instructions filter to an existing store
- embed:  embed one query with the runtime service (debugging aid)

Fatal build errors are logged with the failing stage and exit non-zero.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .config import ASSETS_DIR, EMBED_BATCH_SIZE, MAX_OPENRECIPES, MAX_WIKIBOOKS, EmbedRequest
from .errors import RecipeVecError


def _cmd_build(args) -> int:
    from .build import BuildError, build_store
    from .datasets import SourceKind

    limits = {
        SourceKind.OPENRECIPES: args.max_openrecipes,
        SourceKind.WIKIBOOKS: args.max_wikibooks,
    }
    try:
        paths = build_store(out_dir=Path(args.out), limits=limits, batch_size=args.batch)
    except BuildError as e:
        logger.error("Build failed at stage {}: {}", e.stage, e.cause)
        return 1
    for name, p in paths.items():
        print(f"  - {name}: {p}")
    return 0


def _cmd_filter(args) -> int:
    from .store import refilter_store

    try:
        store = refilter_store(Path(args.dir))
    except (FileNotFoundError, ValueError) as e:
        logger.error("Filter failed: {}", e)
        return 1
    print(f"Updated {args.dir} (count: {store.count})")
    return 0


def _cmd_embed(args) -> int:
    from .query_service import QueryEmbeddingService

    resp = QueryEmbeddingService().handle(EmbedRequest(id="cli", text=args.text))
    if resp.error is not None:
        logger.error("Embed failed: {}", resp.error)
        return 1
    vec = resp.vec or []
    norm = sum(x * x for x in vec) ** 0.5
    print(f"dim={len(vec)} norm={norm:.4f} head={[round(x, 4) for x in vec[:8]]}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="recipevec")
    sub = ap.add_subparsers(dest="command", required=True)

    b = sub.add_parser("build", help="build the vector store from the public datasets")
    b.add_argument("--out", type=str, default=str(ASSETS_DIR), help="output directory")
    b.add_argument("--batch", type=int, default=EMBED_BATCH_SIZE, help="embedding batch size")
    b.add_argument("--max-openrecipes", type=int, default=MAX_OPENRECIPES)
    b.add_argument("--max-wikibooks", type=int, default=MAX_WIKIBOOKS)
    b.set_defaults(func=_cmd_build)

    f = sub.add_parser("filter", help="drop records without instructions from a built store")
    f.add_argument("--dir", type=str, default=str(ASSETS_DIR), help="store directory")
    f.set_defaults(func=_cmd_filter)

    e = sub.add_parser("embed", help="embed one query and print a summary")
    e.add_argument("text", type=str)
    e.set_defaults(func=_cmd_embed)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except RecipeVecError as e:
        logger.error("{}", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
