from __future__ import annotations
import argparse
import logging
from typing import List, Optional

from markov import MarkovChain, MarkovError

def main(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser(description="Generate text by random walks over a saved word-adjacency model.")
    ap.add_argument("--db", required=True, help="SQLite model written by build_markov.py")
    ap.add_argument("--length", type=int, default=20, help="Maximum tokens per passage")
    ap.add_argument("--count", type=int, default=1)
    ap.add_argument("--rng-seed", type=int, default=None)
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        mc = MarkovChain.from_db(args.db, seed=args.rng_seed)
        for i in range(args.count):
            print(mc.generate_text(args.length))
            if i + 1 < args.count:
                print("---")
    except MarkovError as e:
        raise SystemExit(f"Error: {e}")

if __name__ == "__main__":
    main()
