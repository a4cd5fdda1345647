"""
Workflow engine: ordered steps run against one project with live progress.
"""
