"""
Fellowship Platform API

Multi-tenant fellowship management: institutions, cohorts, applications,
sessions, content and messaging.
"""

__version__ = "0.1.0"
