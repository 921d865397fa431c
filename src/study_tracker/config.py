"""Application configuration read from the environment."""
import os
from pathlib import Path

DB_PATH = os.environ.get("STUDY_TRACKER_DB", str(Path.home() / ".study_tracker" / "tracker.db"))
USER_ID = os.environ.get("STUDY_TRACKER_USER", "default-user")

# Logging
LOG_LEVEL = os.environ.get("STUDY_TRACKER_LOG_LEVEL", "INFO")
LOG_FORMAT = os.environ.get("STUDY_TRACKER_LOG_FORMAT", "text")  # "json" or "text"

# Backups
BACKUP_KEEP_COUNT = int(os.environ.get("STUDY_TRACKER_BACKUP_KEEP", "10"))
BACKUP_HISTORY_LIMIT = 50

# 18:30 UTC is midnight in the reference timezone (UTC+5:30)
DAILY_BACKUP_HOUR_UTC = int(os.environ.get("STUDY_TRACKER_DAILY_HOUR_UTC", "18"))
DAILY_BACKUP_MINUTE_UTC = int(os.environ.get("STUDY_TRACKER_DAILY_MINUTE_UTC", "30"))
DAILY_BACKUP_RETRY_SECONDS = int(os.environ.get("STUDY_TRACKER_DAILY_RETRY_SECONDS", "3600"))
