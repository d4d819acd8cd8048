"""Class booking service: KST-aware capacity, conflicts and weekly series."""

__version__ = '0.1.0'
