"""latticeflow: declarative reconciliation of Gateway API intent onto a managed network."""

__version__ = "0.1.0"
