"""Coverage intervals, gap finding, credit budgeting and coverage reports for a metrics and log collector."""

__version__ = "0.1.0"

__all__ = ["coverage", "credit", "formatter", "summary", "timewindow", "tree"]