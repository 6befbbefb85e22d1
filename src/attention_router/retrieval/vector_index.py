"""HNSW vector index with cosine similarity and byte serialization."""

from __future__ import annotations

import heapq
import io
import json
import math
import random
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from loguru import logger

from attention_router.config import IndexConfig

_FORMAT_VERSION = 1


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for empty, zero or mismatched vectors."""
    if len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


@dataclass(slots=True)
class _Node:
    id: str
    vector: np.ndarray
    unit: np.ndarray
    level: int
    neighbors: list[set[str]]


class HnswIndex:
    """Approximate nearest-neighbour store keyed by caller-supplied ids.

    Hierarchical navigable small world graph (Malkov & Yashunin). Vectors are
    kept unit-normalized for distance computation, so the score returned by
    `query` is the cosine similarity. Indexes no larger than the search pool
    are scanned exactly.

    Deletion unlinks the node without repairing the graph; rebuild the index if
    many deletions accumulate.
    """

    def __init__(
        self,
        dimension: int,
        *,
        max_connections: int = 16,
        ef_construction: int = 200,
        ef_search: int = 50,
        seed: int | None = None,
    ) -> None:
        if dimension < 1:
            raise ValueError("dimension must be positive")
        if max_connections < 2:
            raise ValueError("max_connections must be at least 2")
        self.dimension = dimension
        self.max_connections = max_connections
        self.max_connections0 = max_connections * 2
        self.ef_construction = ef_construction
        self.ef_search = ef_search
        self._level_mult = 1.0 / math.log(max_connections)
        self._rng = random.Random(seed)
        self._nodes: dict[str, _Node] = {}
        self._entry_point: str | None = None
        self._max_level = -1

    @classmethod
    def from_config(cls, config: IndexConfig) -> "HnswIndex":
        return cls(
            config.dimension,
            max_connections=config.max_connections,
            ef_construction=config.ef_construction,
            ef_search=config.ef_search,
            seed=config.seed,
        )

    @property
    def size(self) -> int:
        return len(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def contains(self, id: str) -> bool:
        return id in self._nodes

    def ids(self) -> list[str]:
        return list(self._nodes)

    def get_vector(self, id: str) -> list[float] | None:
        node = self._nodes.get(id)
        return None if node is None else node.vector.tolist()

    def insert(self, id: str, vector: Sequence[float]) -> None:
        if id in self._nodes:
            raise ValueError(f"ID {id} already exists in index")
        raw, unit = self._prepare(vector)
        level = self._random_level()
        node = _Node(
            id=id,
            vector=raw,
            unit=unit,
            level=level,
            neighbors=[set() for _ in range(level + 1)],
        )
        self._nodes[id] = node

        if self._entry_point is None:
            self._entry_point = id
            self._max_level = level
            return

        current = self._entry_point
        for layer in range(self._max_level, level, -1):
            nearest = self._search_layer(unit, [current], 1, layer)
            if nearest:
                current = nearest[0][1]

        entry_points = [current]
        for layer in range(min(level, self._max_level), -1, -1):
            candidates = self._search_layer(unit, entry_points, self.ef_construction, layer)
            max_conn = self.max_connections0 if layer == 0 else self.max_connections
            for _, neighbor_id in candidates[:max_conn]:
                node.neighbors[layer].add(neighbor_id)
                neighbor = self._nodes[neighbor_id]
                neighbor.neighbors[layer].add(id)
                self._prune(neighbor, layer, max_conn)
            if candidates:
                entry_points = [candidate_id for _, candidate_id in candidates]

        if level > self._max_level:
            self._max_level = level
            self._entry_point = id

    def delete(self, id: str) -> bool:
        node = self._nodes.pop(id, None)
        if node is None:
            return False

        for layer, neighbor_ids in enumerate(node.neighbors):
            for neighbor_id in neighbor_ids:
                neighbor = self._nodes.get(neighbor_id)
                if neighbor is not None and layer < len(neighbor.neighbors):
                    neighbor.neighbors[layer].discard(id)

        if self._entry_point == id:
            self._entry_point = None
            self._max_level = -1
            for candidate in self._nodes.values():
                if candidate.level > self._max_level:
                    self._max_level = candidate.level
                    self._entry_point = candidate.id
        return True

    def query(
        self, vector: Sequence[float], k: int = 10, *, ef: int | None = None
    ) -> list[tuple[str, float]]:
        """Return up to `k` `(id, similarity)` pairs, most similar first."""
        _, unit = self._prepare(vector)
        if self._entry_point is None or k <= 0:
            return []

        pool = max(ef or self.ef_search, k)
        if len(self._nodes) <= pool:
            ranked = sorted(
                (self._distance(unit, node.unit), node_id)
                for node_id, node in self._nodes.items()
            )
            return [(node_id, 1.0 - dist) for dist, node_id in ranked[:k]]

        current = self._entry_point
        for layer in range(self._max_level, 0, -1):
            nearest = self._search_layer(unit, [current], 1, layer)
            if nearest:
                current = nearest[0][1]
        candidates = self._search_layer(unit, [current], pool, 0)
        return [(node_id, 1.0 - dist) for dist, node_id in candidates[:k]]

    def _search_layer(
        self, query: np.ndarray, entry_ids: list[str], ef: int, layer: int
    ) -> list[tuple[float, str]]:
        visited = set(entry_ids)
        to_explore: list[tuple[float, str]] = []
        results: list[tuple[float, str]] = []  # max-heap on distance via negation

        for entry_id in entry_ids:
            dist = self._distance(query, self._nodes[entry_id].unit)
            heapq.heappush(to_explore, (dist, entry_id))
            heapq.heappush(results, (-dist, entry_id))
            if len(results) > ef:
                heapq.heappop(results)

        while to_explore:
            dist, current_id = heapq.heappop(to_explore)
            if len(results) >= ef and dist > -results[0][0]:
                break
            current = self._nodes[current_id]
            if layer >= len(current.neighbors):
                continue
            for neighbor_id in current.neighbors[layer]:
                if neighbor_id in visited:
                    continue
                visited.add(neighbor_id)
                neighbor_dist = self._distance(query, self._nodes[neighbor_id].unit)
                if len(results) < ef or neighbor_dist < -results[0][0]:
                    heapq.heappush(to_explore, (neighbor_dist, neighbor_id))
                    heapq.heappush(results, (-neighbor_dist, neighbor_id))
                    if len(results) > ef:
                        heapq.heappop(results)

        return sorted((-neg_dist, node_id) for neg_dist, node_id in results)

    def _prune(self, node: _Node, layer: int, max_count: int) -> None:
        if len(node.neighbors[layer]) <= max_count:
            return
        ranked = sorted(
            (self._distance(node.unit, self._nodes[neighbor_id].unit), neighbor_id)
            for neighbor_id in node.neighbors[layer]
        )
        keep = {neighbor_id for _, neighbor_id in ranked[:max_count]}
        for removed_id in node.neighbors[layer] - keep:
            removed = self._nodes[removed_id]
            if layer < len(removed.neighbors):
                removed.neighbors[layer].discard(node.id)
        node.neighbors[layer] = keep

    def _random_level(self) -> int:
        r = self._rng.random()
        if r == 0:
            return 0
        return int(-math.log(r) * self._level_mult)

    def _prepare(self, vector: Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
        raw = np.asarray(vector, dtype=np.float64)
        if raw.ndim != 1 or raw.shape[0] != self.dimension:
            raise ValueError(
                f"Vector has {raw.shape[-1] if raw.ndim else 0} dimensions, expected {self.dimension}"
            )
        norm = float(np.linalg.norm(raw))
        unit = raw / norm if norm > 0 else np.zeros_like(raw)
        return raw, unit

    @staticmethod
    def _distance(a: np.ndarray, b: np.ndarray) -> float:
        return 1.0 - float(np.dot(a, b))

    # Serialization

    def to_bytes(self) -> bytes:
        ids = list(self._nodes)
        header = {
            "format_version": _FORMAT_VERSION,
            "dimension": self.dimension,
            "max_connections": self.max_connections,
            "ef_construction": self.ef_construction,
            "ef_search": self.ef_search,
            "max_level": self._max_level,
            "entry_point": self._entry_point,
            "ids": ids,
            "levels": [self._nodes[node_id].level for node_id in ids],
            "neighbors": [
                [sorted(layer) for layer in self._nodes[node_id].neighbors] for node_id in ids
            ],
        }
        if ids:
            vectors = np.stack([self._nodes[node_id].vector for node_id in ids])
        else:
            vectors = np.zeros((0, self.dimension), dtype=np.float64)

        buffer = io.BytesIO()
        np.savez_compressed(
            buffer,
            header=np.frombuffer(json.dumps(header).encode("utf-8"), dtype=np.uint8),
            vectors=vectors,
        )
        return buffer.getvalue()

    @classmethod
    def from_bytes(cls, blob: bytes) -> "HnswIndex | None":
        """Restore an index; returns None when the blob is corrupt or incompatible."""
        try:
            with np.load(io.BytesIO(blob), allow_pickle=False) as archive:
                header = json.loads(archive["header"].tobytes().decode("utf-8"))
                vectors = np.asarray(archive["vectors"], dtype=np.float64)
            return cls._from_parts(header, vectors)
        except (
            AttributeError,
            ValueError,
            KeyError,
            TypeError,
            IndexError,
            OSError,
            EOFError,
            zipfile.BadZipFile,
        ) as exc:
            logger.warning("Vector index blob rejected: {}", exc)
            return None

    @classmethod
    def _from_parts(cls, header: dict, vectors: np.ndarray) -> "HnswIndex | None":
        if header.get("format_version") != _FORMAT_VERSION:
            logger.warning("Unsupported vector index format: {}", header.get("format_version"))
            return None
        index = cls(
            int(header["dimension"]),
            max_connections=int(header["max_connections"]),
            ef_construction=int(header["ef_construction"]),
            ef_search=int(header["ef_search"]),
        )
        ids = [str(node_id) for node_id in header["ids"]]
        if vectors.shape != (len(ids), index.dimension):
            raise ValueError(f"vector matrix shape {vectors.shape} does not match header")

        for position, node_id in enumerate(ids):
            raw, unit = index._prepare(vectors[position])
            index._nodes[node_id] = _Node(
                id=node_id,
                vector=raw,
                unit=unit,
                level=int(header["levels"][position]),
                neighbors=[set(layer) for layer in header["neighbors"][position]],
            )

        for node in index._nodes.values():
            for layer in node.neighbors:
                if not layer.issubset(index._nodes.keys()):
                    raise ValueError(f"dangling neighbour reference in node {node.id}")

        entry_point = header["entry_point"]
        if entry_point is not None and entry_point not in index._nodes:
            raise ValueError("entry point missing from node set")
        index._entry_point = entry_point
        index._max_level = int(header["max_level"])
        return index
