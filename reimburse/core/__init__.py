"""Core services for Reimburse: settings, logging, tokens and the workflow engine."""
