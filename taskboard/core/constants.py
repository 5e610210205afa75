"""
FILE: taskboard/core/constants.py
PURPOSE: Constants used throughout the application
EXPORTS:
  - DEFAULT_STATUSES, DEFAULT_PRIORITIES, DEFAULT_TYPES: canonical reference rows
  - DEFAULT_STATUS_CODE, DEFAULT_PRIORITY_CODE, DEFAULT_TYPE_CODE
  - REFERENCE_KINDS: lookup kinds handled by the resolver
  - AUDIT_* action names
  - MAX_ROW_ID: upper bound for ids, boards and slots
DEPENDENCIES:
  - None (stdlib only)
NOTES:
  - Canonical rows are (code, name, description); display_order is the tuple index
  - Single source of truth for seeding cold databases
"""

# Reference data kinds
KIND_STATUS = "status"
KIND_PRIORITY = "priority"
KIND_TYPE = "type"
REFERENCE_KINDS = (KIND_STATUS, KIND_PRIORITY, KIND_TYPE)

# Canonical reference rows: (code, name, description)
DEFAULT_STATUSES = (
    ("backlog", "Backlog", "Not yet planned"),
    ("todo", "To Do", "Planned and ready to start"),
    ("in_progress", "In Progress", "Currently being worked on"),
    ("blocked", "Blocked", "Waiting on something else"),
    ("done", "Done", "Finished"),
)

DEFAULT_PRIORITIES = (
    ("low", "Low", "Whenever there is time"),
    ("medium", "Medium", "Normal priority"),
    ("high", "High", "Should be done soon"),
    ("critical", "Critical", "Drop everything"),
)

DEFAULT_TYPES = (
    ("feature", "feature", "New feature or enhancement"),
    ("bug", "bug", "Bug fix or issue resolution"),
    ("docs", "docs", "Documentation update"),
    ("chore", "chore", "Maintenance or cleanup task"),
)

# Default codes
DEFAULT_STATUS_CODE = "backlog"
DEFAULT_PRIORITY_CODE = "medium"
DEFAULT_TYPE_CODE = "feature"

# Audit actions
AUDIT_CREATED = "task:created"
AUDIT_MOVED = "task:moved"
AUDIT_UPDATED = "task:updated"
AUDIT_DELETED = "task:deleted"

# Largest value an SQLite INTEGER column can hold
MAX_ROW_ID = 2**63 - 1
