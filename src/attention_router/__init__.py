"""Attention Router package."""

from .config import AttentionConfig, ChunkingConfig, IndexConfig, RoutingConfig, TrainingConfig

__all__ = ["AttentionConfig", "ChunkingConfig", "IndexConfig", "RoutingConfig", "TrainingConfig"]
