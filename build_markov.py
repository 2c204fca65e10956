from __future__ import annotations
import argparse
import glob
import logging
from typing import List, Optional

from markov import MarkovChain, MarkovError

def feed_corpus(mc: MarkovChain, paths: List[str]) -> int:
    fed = 0
    for p in paths:
        try:
            with open(p, "r", encoding="utf-8", errors="ignore") as f:
                n = mc.feed(f)
        except OSError as e:
            print(f"Warning: failed to read {p}: {e}")
            continue
        print(f"Fed {p}: {n} tokens")
        fed += 1
    return fed

def main(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser(description="Build a word-adjacency model from corpus files and save it to SQLite.")
    ap.add_argument("--corpus", nargs="+", required=True, help="Paths/globs to plain-text corpus files")
    ap.add_argument("--out", required=True, help="Output SQLite path (e.g., models/alice.mrkv)")
    ap.add_argument("--json", default=None, help="Also write a JSON snapshot (.json or .json.gz)")
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    # Resolve corpus globs
    files = []
    for spec in args.corpus:
        files.extend(sorted(glob.glob(spec)))
    if not files:
        raise SystemExit("No corpus files found. Provide --corpus paths/globs to .txt files.")

    mc = MarkovChain()
    if not feed_corpus(mc, files):
        raise SystemExit("None of the corpus files could be read.")

    try:
        mc.save(args.out)
    except MarkovError as e:
        raise SystemExit(f"Failed to save model: {e}")
    print(f"Saved model: {args.out} ({len(mc.graph)} words, {mc.graph.edge_count()} edges)")

    if args.json:
        mc.save_json(args.json)
        print(f"Saved JSON snapshot: {args.json}")

if __name__ == "__main__":
    main()
