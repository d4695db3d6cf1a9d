import math
import re
from typing import Any

_WHITESPACE = re.compile(r'\s+')
_LINE_BREAKS = re.compile(r'[\r\n]+')
_UNSAFE_PROMPT_CHARS = re.compile(r'[<>"`]')


def clean_cell_text(value: Any) -> str:
    """Render a workbook cell as single-line text."""
    if value is None:
        return ''
    if isinstance(value, float) and math.isnan(value):
        return ''

    text = str(value)
    if text.lower() == 'nan':
        return ''

    # Multi-line cells combine heading and subheading ("4302\r\n4302.11.00")
    text = _LINE_BREAKS.sub(' ', text)
    return _WHITESPACE.sub(' ', text).strip()


def clean_description(text: str, max_length: int = 1000) -> str:
    """Sanitize a free-text product description before it goes into a prompt."""
    if not text:
        return ''
    if not isinstance(text, str):
        text = str(text)

    text = _UNSAFE_PROMPT_CHARS.sub('', text)
    text = _WHITESPACE.sub(' ', text)
    return text[:max_length].strip()


def format_code_cell(value: Any) -> Any:
    """
    Render a numeric code-column cell as code text.

    Spreadsheets store codes such as 8471.30 as numbers, which would lose
    the trailing zero; those keep two decimals. Whole numbers drop the
    float suffix and other values are returned unchanged.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return ''
        if value.is_integer():
            return str(int(value))
        text = repr(float(value))
        if len(text.split('.', 1)[1]) <= 2:
            return f"{value:.2f}"
        return text
    return str(value)
