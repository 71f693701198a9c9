"""
Network health-check tool.

Runs DNS, TCP and HTTPS probes against a list of endpoints and reports
what works, what does not and what to check next.
"""

__version__ = "1.0.0"
