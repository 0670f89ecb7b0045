"""
Services module for the sync pipeline.

This module organizes services into:
- validation: Schema validation of upstream payloads
- mappers: Validated payloads to domain records
- entity_reader: Read-through access to synchronized data
- sync: Adapters, entity descriptors and the sync orchestrator
"""
