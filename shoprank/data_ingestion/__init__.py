"""
Seed data ingestion.

Responsibilities:
- Read shop, product, offer, interaction and profile CSV exports.
- Normalize them into the catalog models.
- Hand them to the in-memory store that backs the ranking engine.
"""
