"""stepwatch: hourly and daily step counts from a health-data source."""

__version__ = "0.1.0"
