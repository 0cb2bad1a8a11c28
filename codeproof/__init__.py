"""codeproof - tamper-evident coding activity log with advisory authenticity flags."""

__version__ = "0.1.0"
