"""
Users Module

Platform-side user profiles: role selection during onboarding, Google
credential capture, fellow directory and invitations.
"""
