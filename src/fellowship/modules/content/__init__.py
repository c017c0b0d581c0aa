"""
Content Module

Files an admin shares with a cohort. Uploaded into the cohort's Google Drive
folder and shared by link.
"""
