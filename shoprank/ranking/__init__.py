"""
Shop and offer ranking engine.

Responsibilities:
- Turn candidates into feature vectors relative to a user and location.
- Score them with the rule-based, clustering and learned rankers.
- Blend the three scores by per-candidate data quality.
- Fall back to the rule-based score when a model is missing or fails.
"""
