"""
Webex Status Watcher - Relay Webex status feeds to Webex rooms.

A Python application that watches the Webex status and developer changelog
feeds for new entries, classifies them and posts formatted notifications to
Webex rooms, optionally linking each entry to a Jira issue.
"""

__version__ = "1.0.0"
