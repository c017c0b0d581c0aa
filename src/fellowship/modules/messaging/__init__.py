"""
Messaging Module

Group and direct conversations between platform users. Clients poll for new
messages; there is no push delivery.
"""
