"""Service layer helpers for the honey provenance backend."""

from .evaluator import evaluate
from .lookup import BatchNotFoundError, LookupChain, LookupHit, UpstreamFailure
from .qr import QRService
from .submission import LedgerWriteError, SubmissionResult, SubmissionService
from .sync import LedgerSyncService, SyncReport
from .verification import VerificationOutcome, VerificationService

__all__ = [
    "evaluate",
    "BatchNotFoundError",
    "LookupChain",
    "LookupHit",
    "UpstreamFailure",
    "QRService",
    "LedgerWriteError",
    "SubmissionResult",
    "SubmissionService",
    "LedgerSyncService",
    "SyncReport",
    "VerificationOutcome",
    "VerificationService",
]
