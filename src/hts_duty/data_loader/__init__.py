"""Data loader module."""
from .workbook_loader import Sheet, ReferenceIndex, ReferenceIndexProvider, get_reference_index_provider

__all__ = ['Sheet', 'ReferenceIndex', 'ReferenceIndexProvider', 'get_reference_index_provider']
