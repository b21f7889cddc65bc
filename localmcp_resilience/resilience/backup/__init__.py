from .scheduler import BackupOutcome, BackupProvider, BackupRecord, BackupScheduler

__all__ = ["BackupScheduler", "BackupRecord", "BackupOutcome", "BackupProvider"]
