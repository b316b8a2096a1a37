"""
Domain models for the audit pipeline
"""
from .stage import StageStatus, StageRecord, STAGE_KEYS, stage_key, stage_index
from .audit_run import AuditRun, RunStatus, TERMINAL_STATUSES, ACTIVE_STATUSES
from .product import Product
from .discrepancy import (
    Severity,
    Bucket,
    NormalizedEntry,
    NormalizedStage3,
    BaseScores,
    MetricBar,
    LLMAdjustment,
    PenaltySummary,
    TruthIndexBreakdown,
)

__all__ = [
    'StageStatus',
    'StageRecord',
    'STAGE_KEYS',
    'stage_key',
    'stage_index',
    'AuditRun',
    'RunStatus',
    'TERMINAL_STATUSES',
    'ACTIVE_STATUSES',
    'Product',
    'Severity',
    'Bucket',
    'NormalizedEntry',
    'NormalizedStage3',
    'BaseScores',
    'MetricBar',
    'LLMAdjustment',
    'PenaltySummary',
    'TruthIndexBreakdown',
]
