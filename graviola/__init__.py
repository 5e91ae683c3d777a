"""Fan-out querier that merges time-series results from several Prometheus-compatible remote storages."""

__version__ = "0.1.0"