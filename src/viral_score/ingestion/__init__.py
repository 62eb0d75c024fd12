"""
Ingestion Layer - social metrics and liquidity data.

This module provides:
    - SocialPost, parse_posts, extract_tokens, aggregate_posts: feed items to metrics
    - PostStoreMetricSource: windowed aggregation over stored posts
    - LiquidityClient: quote-token pools per meme token
"""

from .liquidity import GraphQLError, LiquidityClient, PoolInfo, TokenPools, group_pairs
from .posts import (
    BodyItem,
    MetricSource,
    PostFeed,
    PostStoreMetricSource,
    SocialPost,
    aggregate_posts,
    extract_tokens,
    parse_posts,
)

__all__ = [
    "BodyItem",
    "GraphQLError",
    "LiquidityClient",
    "MetricSource",
    "PoolInfo",
    "PostFeed",
    "PostStoreMetricSource",
    "SocialPost",
    "TokenPools",
    "aggregate_posts",
    "extract_tokens",
    "group_pairs",
    "parse_posts",
]
