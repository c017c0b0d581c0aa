"""
Sessions Module

Cohort sessions scheduled on the institution's Google Calendar with a Meet
link. Past sessions are immutable; cancelled sessions are kept for history.
"""
