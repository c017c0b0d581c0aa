"""
Institutions Module

Tenant onboarding: admin role requests, root admin review and direct
creation, and the institution's Google Workspace connection.

API Endpoints:
- /institutions - Approved institutions, the admin's own institution, Google wiring (router.py)
- /root-admin/institutions - Review and direct creation (admin_router.py)
"""
