"""
wfpilot - browser automation for Workfront project chores.
"""
__version__ = "0.1.0"
