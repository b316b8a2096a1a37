"""
Models - domain dataclasses and pydantic boundary payloads

- models.domain: storage-agnostic dataclasses (runs, stages, discrepancies)
- models.payloads: pydantic coercion of generator output
- models.api: request/response models for the HTTP layer
"""
