"""NATS request/reply tool for workflow playbooks."""

__version__ = "0.1.0"
