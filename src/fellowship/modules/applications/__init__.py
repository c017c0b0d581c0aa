"""
Applications Module

Fellows apply to an institution's programme; institution admins review each
application exactly once. Approval places the fellow in the institution and,
optionally, a cohort.

API Endpoints:
- /applications - Submit and list own applications (router.py)
- /admin/applications - List, inspect and review applications (admin_router.py)
"""
