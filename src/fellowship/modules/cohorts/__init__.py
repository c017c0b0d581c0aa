"""
Cohorts Module

Cohort lifecycle (upcoming -> active -> completed), at most one active cohort
per institution, non-overlapping date windows, and fellow membership.

API Endpoints:
- /cohorts - Admin cohort management and on-demand reconciliation (router.py)
- /cron/cohorts/reconcile - Shared-secret reconciliation of all institutions (cron_router.py)

Background Jobs (via APScheduler):
- cohorts_reconcile_statuses: reconciles all institutions on an interval (jobs.py)
"""
