"""issuesync - Reconcile GitHub issues into JIRA tickets."""

__version__ = "0.1.0"
