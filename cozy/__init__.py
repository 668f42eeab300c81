"""
cozy runs the named commands of a project as workflows.

A workflow runs its commands one after another, failing fast, or all at once,
keeping each one alive under a bounded restart policy while streaming output to
a console dashboard.
"""

__version__ = "0.1.0"
