"""
Browser layer for wfpilot.

Provides Playwright-based browser handling with:
- Session lifecycle with a saved Workfront login (storage state)
- Request routing (heavy resources, trackers, short-circuited endpoints)
- Selector fallback chains with fixed-delay retries
- Workfront iframe resolution, folder navigation and document selection
"""
