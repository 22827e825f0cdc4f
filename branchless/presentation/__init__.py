"""
Presentation -- Display layer for the branchless CLI

Contains display and formatting:
- Symbols: Glyph sets (unicode/ascii)
- Smartlog: Tree rendering of a repository snapshot (presentation.smartlog)
"""

from .symbols import (
    SymbolSet, get_symbols, supports_unicode, UNICODE, ASCII,
    truncate, short_oid,
    SUMMARY_LENGTH, ID_DISPLAY_LENGTH
)

__all__ = [
    "SymbolSet", "get_symbols", "supports_unicode", "UNICODE", "ASCII",
    "truncate", "short_oid",
    "SUMMARY_LENGTH", "ID_DISPLAY_LENGTH",
]
