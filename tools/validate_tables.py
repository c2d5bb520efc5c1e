from __future__ import annotations
import argparse, logging, sys
from collections import Counter
from pathlib import Path

from schema_core import config
from schema_core.errors import ConfigurationError
from schema_core.mode_config import load_mode_config
from schema_core.normalizer import DEFAULT_NORMALIZATION_CONFIG, load_normalization_config
from schema_core.registry import unknown_ids

log = logging.getLogger("validate_tables")


def run(directory: str | None = None, normalization: str | None = None) -> int:
    """Load every table once; 0 when valid, 2 on a configuration error."""
    try:
        cfg = load_mode_config(directory)
        norm_path = normalization or config.NORMALIZATION_CONFIG_PATH
        norm = load_normalization_config(norm_path) if norm_path else DEFAULT_NORMALIZATION_CONFIG
    except ConfigurationError as exc:
        log.error("%s: %s", exc.code, exc.message)
        return 2

    referenced = {cid for mw in cfg.base.values() for cid in mw.weights}
    families = Counter(row.family for row in cfg.coping_map)
    gates = sorted({g for deltas in cfg.context.values() for g in deltas})
    unused = unknown_ids(cfg.known_clinical_ids or (), referenced)

    print(f"Tables: {Path(directory) if directory else config.MODE_SCORING_DIR}")
    print(f"  modes: {len(cfg.mode_ids)} ({', '.join(cfg.mode_ids)})")
    print(f"  schemas referenced: {len(referenced)} / {len(cfg.known_clinical_ids or ())}")
    print(f"  coping map rows: S={families['S']} A={families['A']} O={families['O']}")
    print(f"  gates with deltas: {', '.join(gates) or '-'}")
    print(f"  aliases: {len(cfg.aliases)}")
    print(f"  instrument tables: {len(norm.conversion_tables)}  config sha256={norm.fingerprint()[:12]}")
    if unused:
        print(f"  ! schemas with no mode weight: {', '.join(unused)}")
    print("  ✓ OK")
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Validate mode-scoring CSV tables and normalization config")
    ap.add_argument("directory", nargs="?", default=None, help="tables directory (default: bundled tables)")
    ap.add_argument("--normalization", default=None, help="normalization config JSON")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="[%(levelname)s] %(message)s")
    return run(args.directory, args.normalization)


if __name__ == "__main__":
    sys.exit(main())
