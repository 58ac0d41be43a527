"""Read-only name search over a Google Drive folder tree."""
