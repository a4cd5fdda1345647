"""
Workfront automations: share, comment, status, hours and upload.
"""
