"""
Background model training.

Responsibilities:
- Cluster users by recent behaviour and fit one ranker per cluster.
- Install clusters and rankers together as one immutable model set.
- Keep the previous model set when a cycle is skipped or fails.
"""
