"""Reconciliation package: the ordered cycle and the scheduler that drives it."""
from reconciliation.cycle import CycleResult, ReconciliationCycle
from reconciliation.scheduler import ReconciliationScheduler, ReconciliationState

__all__ = [
    'CycleResult',
    'ReconciliationCycle',
    'ReconciliationScheduler',
    'ReconciliationState',
]
