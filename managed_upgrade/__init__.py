"""Resource model, cluster-version and Alertmanager clients, availability checks and reconcilers for managed cluster upgrades."""

__version__ = "0.1.0"