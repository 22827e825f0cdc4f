"""
Symbols -- Glyphs for the smartlog

Progressive enhancement: Unicode when supported, ASCII fallback.
Configurable via the display.symbols setting.

ASCII glyphs:
  @  HEAD
  O  main branch commit
  o  visible commit
  x  abandoned commit
"""

import os
import sys
from dataclasses import dataclass
from typing import Optional


SUMMARY_LENGTH = 72       # Commit summary shown per smartlog line
ID_DISPLAY_LENGTH = 8     # Abbreviated oids (e.g., "f777ecc9")


def truncate(text: str, length: int = SUMMARY_LENGTH, full: bool = False) -> str:
    """
    Truncate text with ellipsis, respecting full mode.

    Examples:
        truncate("Short", 50)                 -> "Short"
        truncate("Any length", 5, full=True)  -> "Any length"
    """
    if not text:
        return ""
    if full or len(text) <= length:
        return text
    if length <= 3:
        return text[:length]
    return text[:length - 3] + "..."


def short_oid(oid: Optional[str]) -> str:
    return (oid or "")[:ID_DISPLAY_LENGTH]


@dataclass(frozen=True)
class SymbolSet:
    """Complete set of glyphs for commit states and tree drawing."""
    # Commits
    head: str
    main: str
    visible: str
    abandoned: str

    # Tree drawing
    vertical: str   # | or │
    elided: str     # : or ⋮  (commits in between are not shown)
    split: str      # |\ or ├─╮

    # Status
    check_pass: str
    check_fail: str
    arrow: str


UNICODE = SymbolSet(
    head='●',
    main='◆',
    visible='◯',
    abandoned='✕',
    vertical='│',
    elided='⋮',
    split='├─╮',
    check_pass='✓',
    check_fail='✗',
    arrow='→',
)

ASCII = SymbolSet(
    head='@',
    main='O',
    visible='o',
    abandoned='x',
    vertical='|',
    elided=':',
    split='|\\',
    check_pass='[OK]',
    check_fail='[X]',
    arrow='->',
)


def supports_unicode() -> bool:
    """
    Check if environment likely supports Unicode output.

    Conservative: defaults to ASCII if uncertain.
    """
    # Explicit environment override
    if os.environ.get('BRANCHLESS_ASCII_ONLY', '').lower() in ('1', 'true', 'yes'):
        return False

    stdout_encoding = getattr(sys.stdout, 'encoding', None)
    if stdout_encoding:
        encoding_lower = stdout_encoding.lower().replace('-', '').replace('_', '')
        if encoding_lower.startswith('cp') or encoding_lower in ('ascii', 'latin1', 'iso88591'):
            return False
        if 'utf' in encoding_lower:
            return True

    lang = os.environ.get('LANG', '').lower()
    lc_all = os.environ.get('LC_ALL', '').lower()
    if 'utf-8' in lang or 'utf8' in lang or 'utf-8' in lc_all or 'utf8' in lc_all:
        return True

    # Default: ASCII for safety
    return False


def get_symbols(preference: Optional[str] = None) -> SymbolSet:
    """
    Get appropriate symbol set based on preference or auto-detection.

    Args:
        preference: "unicode", "ascii", or "auto" (None = auto)
    """
    if preference == 'unicode':
        return UNICODE
    if preference == 'ascii':
        return ASCII
    # Auto-detect
    return UNICODE if supports_unicode() else ASCII
