"""Workshop portal: parts, toner and device claim tracking for field engineers."""

__version__ = "1.0.0"
