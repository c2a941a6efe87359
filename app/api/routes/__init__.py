"""
API routes.

- sync: run control, progress, status, discovery and scheduler control
"""
