"""
Team name normalization and short display codes.

Single source of truth for accent folding: mapping, competitions and the
team code formatter MUST import from here.
"""

import re
import unicodedata


FALLBACK_TEAM_CODE = "TEA"
TEAM_CODE_LENGTH = 3
TEAM_CODE_FILLER = "X"


def normalize_ascii(value: str) -> str:
    """
    Strip diacritics (NFD + drop combining marks).

    Examples:
        "Atlético Tucumán" -> "Atletico Tucuman"
        "Ñublense"         -> "Nublense"
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def format_team_code(name: str) -> str:
    """
    Map a team name to a 3-letter uppercase display code.

    Steps:
    1. Strip diacritics
    2. Drop everything that is not A-Z / 0-9
    3. Take the first three characters
    4. Right-pad with "X" when the name is shorter than three

    Examples:
        "San Lorenzo"      -> "SAN"
        "Atlético Tucumán" -> "ATL"
        "Ñublense"         -> "NUB"
        "U"                -> "UXX"
        ""                 -> "TEA"
    """
    compact = re.sub(r"[^A-Za-z0-9]+", "", normalize_ascii(name or "")).upper()
    if not compact:
        return FALLBACK_TEAM_CODE
    return compact[:TEAM_CODE_LENGTH].ljust(TEAM_CODE_LENGTH, TEAM_CODE_FILLER)
