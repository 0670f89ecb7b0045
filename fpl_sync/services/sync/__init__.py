"""
FPL Data Sync Service

Keeps the database and the cache in step with the FPL API.

Key components:
- Adapters: Fetch raw data from the FPL API
- Entities: Per-entity-type descriptors driving the generic pipeline
- Orchestrator: Run sync workflows and report their outcome
"""
