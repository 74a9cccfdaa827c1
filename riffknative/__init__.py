"""Manage Knative adapters and deployers for riff workloads against an in-memory resource store."""

__version__ = "0.1.0"