"""
API route modules.

Every router is mounted under the /api/v1 prefix by ticketing.main.
"""
