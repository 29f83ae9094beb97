"""
================================================================================
GameDiss - Title Normalizer
================================================================================
Turns a free-text game title into a comparable key.

  "Hollow Knight: Silksong"               -> "hollow knight silksong"
  "The Witcher III - Game of the Year"    -> "witcher 3"
  "DOOM (2016)"                           -> "doom"
  "Pokémon Legends: Arceus"               -> "pokemon legends arceus"
  "Ratchet & Clank"                       -> "ratchet and clank"

normalize() is pure, total and idempotent:
    normalize(normalize(x)) == normalize(x)
================================================================================
"""

import re
import unicodedata
from typing import List, Tuple


STOP_WORDS = {'the', 'a', 'an'}

ROMAN_NUMERALS = {
    'i': '1',
    'ii': '2',
    'iii': '3',
    'iv': '4',
    'v': '5',
    'vi': '6',
    'vii': '7',
    'viii': '8',
    'ix': '9',
    'x': '10',
    'xi': '11',
    'xii': '12',
    'xiii': '13',
    'xiv': '14',
    'xv': '15',
    'xvi': '16',
    'xvii': '17',
    'xviii': '18',
    'xix': '19',
    'xx': '20',
}

ABBREVIATIONS = {
    'pt': 'part',
    'vol': 'volume',
    'vs': 'versus',
}

# Words that form "<word> edition" suffixes
EDITION_WORDS = {
    'deluxe', 'definitive', 'complete', 'ultimate', 'gold', 'standard',
    'special', 'enhanced', 'anniversary', 'collectors', 'premium', 'digital',
    'legendary', 'goty', 'launch', 'final',
}

# Suffix phrases in post-article-removal token form
EDITION_SUFFIXES: Tuple[Tuple[str, ...], ...] = (
    ('game', 'of', 'year', 'edition'),
    ('game', 'of', 'year'),
    ('goty',),
    ('edition',),
)

_YEAR_IN_PARENS = re.compile(r'\(\s*\d{4}\s*\)')
_TRADEMARKS = re.compile(r'[™®©]')
_APOSTROPHES = re.compile(r"['’`´]")
_NON_WORD = re.compile(r'[^\w\s]|_')


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize('NFKD', text)
    return ''.join(c for c in decomposed if not unicodedata.combining(c))


def _clean_characters(title: str) -> str:
    # casefold output may decompose further
    text = _strip_diacritics(_strip_diacritics(title).casefold())
    text = _TRADEMARKS.sub('', text)
    text = _YEAR_IN_PARENS.sub(' ', text)
    text = _APOSTROPHES.sub('', text)
    text = text.replace('&', ' and ')
    return _NON_WORD.sub(' ', text)


def _drop_stop_words(words: List[str]) -> List[str]:
    kept = [w for w in words if w not in STOP_WORDS]
    return kept or words


def _strip_edition_suffixes(words: List[str]) -> List[str]:
    changed = True
    while changed:
        changed = False
        for suffix in EDITION_SUFFIXES:
            n = len(suffix)
            if len(words) <= n or tuple(words[-n:]) != suffix:
                continue
            remainder = words[:-n]
            # "<edition word> edition" goes as a unit
            if suffix == ('edition',) and remainder[-1] in EDITION_WORDS:
                if len(remainder) == 1:
                    break
                remainder = remainder[:-1]
            words = remainder
            changed = True
            break
    return words


def normalize(title: str) -> str:
    """
    Normalize a title into a comparable key.

    Steps:
      1. Strip diacritics, casefold, drop trademark symbols and apostrophes
      2. Drop a year in parentheses, map "&" to "and"
      3. Replace remaining punctuation with spaces
      4. Expand abbreviations, convert roman numerals to arabic
      5. Drop articles ("the", "a", "an")
      6. Strip trailing edition suffixes

    Steps 5 and 6 never empty the key.

    Args:
        title: Raw title

    Returns:
        Normalized key ("" for empty input)
    """
    if not title:
        return ""

    words = _clean_characters(title).split()
    words = [ABBREVIATIONS.get(w, w) for w in words]
    words = [ROMAN_NUMERALS.get(w, w) for w in words]
    words = _drop_stop_words(words)
    words = _strip_edition_suffixes(words)

    return ' '.join(words)
