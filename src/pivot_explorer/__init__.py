"""pivot-explorer — Explore CSV exports with ad-hoc pivot tables."""

__version__ = "0.2.0"

TOTAL_LABEL: str = "Total"
UNASSIGNED_LABEL: str = "Unassigned"
KEY_SEPARATOR: str = " - "
