"""
Taxonomy Migration

Migrates legacy many-to-many relationship records (Posts 2 Posts style
connections) into a taxonomy: every related entity becomes a term and the
term is attached to the source entity.

Supports:
- Multiple relationship sources (in-memory, CSV/JSON export, SQL table)
- Multiple term/entity targets (in-memory, WordPress REST API)
- Idempotent term resolution
- Batched runs with pause, resume, cancel and rollback
- Dry runs that never write to the target
"""

__version__ = "0.1.0"
