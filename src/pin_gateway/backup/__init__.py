"""Cold storage backups of pinned uploads."""

from pin_gateway.backup.job import BackupJob, backup_key
from pin_gateway.backup.s3 import S3ColdStorage

__all__ = ["BackupJob", "S3ColdStorage", "backup_key"]
