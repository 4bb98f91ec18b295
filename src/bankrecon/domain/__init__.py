"""Domain layer for bankrecon application."""

__all__ = [
    "AccountService",
    "CheckpointService",
    "RollbackService",
    "SequenceService",
    "StatementImportService",
    "TransactionService",
]

_SERVICES = {
    "AccountService": "bankrecon.domain.account",
    "CheckpointService": "bankrecon.domain.checkpoint",
    "RollbackService": "bankrecon.domain.rollback",
    "SequenceService": "bankrecon.domain.sequencing",
    "StatementImportService": "bankrecon.domain.statement_import",
    "TransactionService": "bankrecon.domain.transaction",
}


# Import services lazily: the database layer imports domain.entities, and
# the services import the database layer
def __getattr__(name):
    if name in _SERVICES:
        import importlib

        return getattr(importlib.import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
