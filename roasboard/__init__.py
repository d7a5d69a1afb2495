"""roasboard: spend-to-revenue reconciliation and ROAS dashboards."""

__version__ = "0.1.0"
