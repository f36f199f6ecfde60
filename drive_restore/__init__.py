"""
Drive Backup Restore Service.

Downloads password-protected SQL Server backup archives from Google Drive,
extracts and restores them into a SQL Server instance, runs a correction
query on the restored database and records completion in a Google Sheet.
"""

__version__ = "0.1.0"
