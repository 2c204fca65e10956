from __future__ import annotations
import gzip
import io
import json
import logging
import os
import random
import sqlite3
import unicodedata
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
SENTENCE_PUNCT = ".,?!;:"

TextSource = Union[str, io.TextIOBase]


class MarkovError(Exception):
    pass


class StoreError(MarkovError):
    pass


class StoreOpenError(StoreError):
    pass


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class EmptyGraphError(MarkovError):
    pass


def is_letter(c: str) -> bool:
    return c.isalpha()


def is_digit(c: str) -> bool:
    return c.isdecimal()


def is_punct(c: str) -> bool:
    return unicodedata.category(c).startswith("P")


# Checked in this order; the first match fixes the run's category.
_CATEGORIES: Sequence[Callable[[str], bool]] = (is_letter, is_digit, is_punct)


def _classify(c: str) -> Optional[Callable[[str], bool]]:
    for test in _CATEGORIES:
        if test(c):
            return test
    return None


def _iter_chars(source: TextSource) -> Iterator[str]:
    if isinstance(source, str):
        yield from source
        return
    while True:
        chunk = source.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        yield from chunk


def tokenize(source: TextSource) -> Iterator[str]:
    """
    Lazily split text into maximal runs of letters, digits or punctuation.

    `source` is a string or a text stream with `.read(n)`. Characters that
    are none of the three (whitespace, symbols, controls) only separate runs.
    """
    run: List[str] = []
    category = None
    for c in _iter_chars(source):
        if category is not None and category(c):
            run.append(c)
            continue
        if run:
            yield "".join(run)
            run = []
        category = _classify(c)
        if category is not None:
            run.append(c)
    if run:
        yield "".join(run)


class TokenNode:
    __slots__ = ("id", "text", "successors")

    def __init__(self, id: int, text: str, successors: Optional[List[int]] = None):
        self.id = id
        self.text = text
        self.successors: List[int] = successors if successors is not None else []

    def __repr__(self) -> str:
        return f"TokenNode(id={self.id}, text={self.text!r}, successors={self.successors})"


class TokenGraph:
    """
    Directed graph of tokens: an edge A -> B means B was seen right after A.

    Nodes live in a list indexed by id (ids are dense, assigned in first-seen
    order) with a text -> id dict alongside for lookup-or-create. Edges carry
    no weight; each successor id appears at most once per node.
    """
    def __init__(self):
        self.nodes: List[TokenNode] = []
        self._ids: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, node_id: int) -> TokenNode:
        return self.nodes[node_id]

    def __contains__(self, text: str) -> bool:
        return text in self._ids

    def find(self, text: str) -> Optional[TokenNode]:
        node_id = self._ids.get(text)
        return None if node_id is None else self.nodes[node_id]

    def _create(self, text: str, successors: Optional[List[int]] = None) -> TokenNode:
        node = TokenNode(len(self.nodes), text, successors)
        self.nodes.append(node)
        self._ids[text] = node.id
        return node

    def lookup_or_create(self, text: str) -> TokenNode:
        node = self.find(text)
        return node if node is not None else self._create(text)

    def add_edge(self, previous: str, current: str) -> None:
        # current is resolved first so a brand-new pair gets ids (current, previous)
        nxt = self.lookup_or_create(current)
        prev = self.find(previous)
        if prev is None:
            self._create(previous, [nxt.id])
        elif nxt.id not in prev.successors:
            prev.successors.append(nxt.id)

    def edge_count(self) -> int:
        return sum(len(n.successors) for n in self.nodes)

    def successor_texts(self, text: str) -> List[str]:
        node = self.find(text)
        if node is None:
            raise KeyError(text)
        return [self.nodes[i].text for i in node.successors]

    def _check_edges(self, error: type) -> None:
        n = len(self.nodes)
        for node in self.nodes:
            for sid in node.successors:
                if not 0 <= sid < n:
                    raise error(f"edge {node.id} -> {sid} references an unknown id")

    def to_dict(self) -> dict:
        return {
            "version": 1,
            "words": [n.text for n in self.nodes],
            "next": [list(n.successors) for n in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenGraph":
        words = data.get("words", [])
        nexts = data.get("next", [[] for _ in words])
        if len(nexts) != len(words):
            raise ValueError("'words' and 'next' must have the same length")
        graph = cls()
        for text, succ in zip(words, nexts):
            if not isinstance(text, str) or text in graph:
                raise ValueError(f"invalid or duplicate word: {text!r}")
            successors: List[int] = []
            for s in succ:
                if not isinstance(s, int) or isinstance(s, bool):
                    raise ValueError(f"successor id must be an integer: {s!r}")
                if s not in successors:
                    successors.append(s)
            graph._create(text, successors)
        graph._check_edges(ValueError)
        return graph


def generate(graph: TokenGraph, max_length: int, rng: random.Random) -> List[str]:
    """Random walk from a uniformly chosen node; 1..max_length tokens."""
    if not len(graph):
        raise EmptyGraphError("cannot generate from an empty graph")
    node = graph[rng.randrange(len(graph))]
    chain = [node.text]
    while len(chain) < max_length and node.successors:
        if len(node.successors) == 1:
            node = graph[node.successors[0]]
        else:
            node = graph[node.successors[rng.randrange(len(node.successors))]]
        chain.append(node.text)
    return chain


def _is_alnum(c: str) -> bool:
    return is_letter(c) or is_digit(c)


def word_join(tokens: Iterable[str]) -> str:
    """
    Join tokens back into text.

    A space follows a token ending in one of SENTENCE_PUNCT, or goes between
    two tokens whose facing characters are both letters/digits. Otherwise
    the tokens abut.
    """
    parts: List[str] = []
    prev = None
    for tok in tokens:
        if prev is not None:
            lc, fc = prev[-1], tok[0]
            if lc in SENTENCE_PUNCT or (_is_alnum(lc) and _is_alnum(fc)):
                parts.append(" ")
        parts.append(tok)
        prev = tok
    return "".join(parts)


_SCHEMA = (
    """CREATE TABLE IF NOT EXISTS word (
        id   INTEGER PRIMARY KEY,
        word TEXT UNIQUE NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS next (
        id   INTEGER,
        next INTEGER,
        PRIMARY KEY (id, next),
        UNIQUE (id, next)
    )""",
)


def _connect(path: str, must_exist: bool) -> sqlite3.Connection:
    if must_exist and not os.path.exists(path):
        raise StoreOpenError(f"store not found: {path}")
    try:
        conn = sqlite3.connect(path)
    except sqlite3.Error as e:
        raise StoreOpenError(f"cannot open store {path}: {e}") from e
    try:
        # forces a header read; junk files fail here
        conn.execute("PRAGMA schema_version").fetchone()
    except sqlite3.DatabaseError as e:
        conn.close()
        raise StoreOpenError(f"not an SQLite store: {path}: {e}") from e
    return conn


def load_graph(path: str) -> TokenGraph:
    """Read a graph from the `word`/`next` tables of an SQLite file."""
    conn = _connect(path, must_exist=True)
    try:
        try:
            word_rows = conn.execute("SELECT id, word FROM word ORDER BY id").fetchall()
            next_rows = conn.execute("SELECT id, next FROM next ORDER BY rowid").fetchall()
        except sqlite3.Error as e:
            raise StoreReadError(f"cannot read {path}: {e}") from e
    finally:
        conn.close()

    graph = TokenGraph()
    remap: Dict[int, int] = {}
    for stored_id, text in word_rows:
        if not isinstance(stored_id, int) or not isinstance(text, str):
            raise StoreReadError(f"malformed word row: ({stored_id!r}, {text!r})")
        if text in graph:
            raise StoreReadError(f"duplicate word: {text!r}")
        remap[stored_id] = graph._create(text).id

    for src, dst in next_rows:
        if src not in remap or dst not in remap:
            raise StoreReadError(f"edge ({src!r}, {dst!r}) references an unknown word id")
        node = graph[remap[src]]
        if remap[dst] not in node.successors:
            node.successors.append(remap[dst])

    logger.info("Loaded %d words, %d edges from %s", len(graph), graph.edge_count(), path)
    return graph


def save_graph(graph: TokenGraph, path: str) -> None:
    """
    Replace the contents of the store at `path` with `graph`.

    Words and edges are committed in two separate transactions. If the
    process dies in between, the store holds every word but no edges until
    the next save.
    """
    conn = _connect(path, must_exist=False)
    try:
        try:
            for ddl in _SCHEMA:
                conn.execute(ddl)
            with conn:
                conn.execute("DELETE FROM next")
                conn.execute("DELETE FROM word")
                conn.executemany(
                    "INSERT INTO word(id, word) VALUES (?, ?)",
                    ((n.id, n.text) for n in graph.nodes),
                )
            with conn:
                conn.executemany(
                    "INSERT INTO next(id, next) VALUES (?, ?)",
                    ((n.id, s) for n in graph.nodes for s in n.successors),
                )
        except sqlite3.Error as e:
            raise StoreWriteError(f"cannot write {path}: {e}") from e
    finally:
        conn.close()
    logger.info("Saved %d words, %d edges to %s", len(graph), graph.edge_count(), path)


class MarkovChain:
    """
    A token graph plus the seeded random source used to walk it.

    Not thread-safe: feeding and generating mutate the graph and the RNG.
    """
    def __init__(self, seed: Optional[int] = None, graph: Optional[TokenGraph] = None):
        self.rng = random.Random(seed)
        self.graph = graph if graph is not None else TokenGraph()

    @classmethod
    def from_db(cls, path: str, seed: Optional[int] = None) -> "MarkovChain":
        return cls(seed=seed, graph=load_graph(path))

    def feed(self, source: TextSource) -> int:
        """Add every consecutive token pair of `source`; returns the token count."""
        last = None
        count = 0
        for tok in tokenize(source):
            if last is not None:
                self.graph.add_edge(last, tok)
            last = tok
            count += 1
        if count == 1:
            self.graph.lookup_or_create(last)
        logger.debug("Fed %d tokens; graph has %d words", count, len(self.graph))
        return count

    def save(self, path: str):
        save_graph(self.graph, path)

    def generate(self, max_length: int) -> List[str]:
        return generate(self.graph, max_length, self.rng)

    def generate_text(self, max_length: int) -> str:
        return word_join(self.generate(max_length))

    def save_json(self, path: str):
        """
        Write a JSON snapshot of the graph.
        - .json -> plain JSON
        - .json.gz or .gz -> gzipped JSON
        """
        data = self.graph.to_dict()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        if path.endswith(".gz"):
            with gzip.open(path, "wt", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
        else:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)

    @classmethod
    def load_json(cls, path: str, seed: Optional[int] = None) -> "MarkovChain":
        if path.endswith(".gz"):
            with gzip.open(path, "rt", encoding="utf-8") as f:
                data = json.load(f)
        else:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        return cls(seed=seed, graph=TokenGraph.from_dict(data))
