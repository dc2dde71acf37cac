"""AumOS Compliance Engine: rule evaluation, audit trail, retention and reporting."""

__version__ = "0.1.0"
