"""
Repository layer - PostgreSQL storage for audit runs, stage records and subjects

Repositories abstract storage details from domain logic.
"""
from .stage_repository import StageRepository, StageVersionConflict
from .audit_run_repository import AuditRunRepository
from .product_repository import ProductRepository

__all__ = [
    'StageRepository',
    'StageVersionConflict',
    'AuditRunRepository',
    'ProductRepository',
]
