"""Preprocessor module."""
from .rate_parser import RateKind, ParsedRate, parse_rate, parse_rate_cell, looks_like_rate
from .text_processor import clean_cell_text, clean_description, format_code_cell

__all__ = [
    'RateKind', 'ParsedRate', 'parse_rate', 'parse_rate_cell', 'looks_like_rate',
    'clean_cell_text', 'clean_description', 'format_code_cell',
]
