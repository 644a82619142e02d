"""
URL slug generation.
Hangul titles are romanised syllable by syllable so Korean posts get readable slugs.
"""
import re
import time

# Initial consonants
CHOSUNG_ROMAN = ['g', 'kk', 'n', 'd', 'tt', 'r', 'm', 'b', 'pp', 's', 'ss', '', 'j', 'jj', 'ch', 'k', 't', 'p', 'h']
# Medial vowels
JUNGSUNG_ROMAN = ['a', 'ae', 'ya', 'yae', 'eo', 'e', 'yeo', 'ye', 'o', 'wa', 'wae', 'oe', 'yo', 'u', 'wo', 'we', 'wi', 'yu', 'eu', 'ui', 'i']
# Final consonants
JONGSUNG_ROMAN = ['', 'k', 'k', 'k', 'n', 'n', 'n', 't', 'l', 'k', 'm', 'l', 'l', 'l', 'p', 'l', 'm', 'p', 'p', 't', 't', 'ng', 't', 't', 'k', 't', 'p', 't']

HANGUL_FIRST = 0xAC00
HANGUL_LAST = 0xD7A3

SLUG_PATTERN = re.compile(r'^[a-z0-9]+(-[a-z0-9]+)*$')


def romanize_hangul(char: str) -> str:
    """Romanise a single precomposed Hangul syllable; other characters pass through."""
    code = ord(char)
    if code < HANGUL_FIRST or code > HANGUL_LAST:
        return char

    base = code - HANGUL_FIRST
    cho = base // 588
    jung = (base % 588) // 28
    jong = base % 28
    return CHOSUNG_ROMAN[cho] + JUNGSUNG_ROMAN[jung] + JONGSUNG_ROMAN[jong]


def _base36(number: int) -> str:
    digits = '0123456789abcdefghijklmnopqrstuvwxyz'
    if number == 0:
        return '0'
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return ''.join(reversed(out))


def generate_slug(title: str, use_timestamp: bool = False) -> str:
    """
    Convert a title into a URL slug.

    Args:
        title: Source title (Korean and/or Latin text)
        use_timestamp: Append a base-36 millisecond timestamp to avoid collisions

    Returns:
        str: Slug made of [a-z0-9] runs joined by single hyphens
    """
    parts = []
    for char in title:
        if HANGUL_FIRST <= ord(char) <= HANGUL_LAST:
            parts.append(romanize_hangul(char))
        elif char.isascii() and char.isalnum():
            parts.append(char.lower())
        elif char.isspace():
            parts.append('-')
        # everything else is dropped

    slug = re.sub(r'-+', '-', ''.join(parts)).strip('-')

    if not slug:
        slug = 'post'

    if use_timestamp:
        slug = f"{slug}-{_base36(int(time.time() * 1000))}"

    return slug


def is_valid_slug(slug: str) -> bool:
    """Lowercase alphanumerics separated by single hyphens."""
    return bool(slug) and SLUG_PATTERN.match(slug) is not None
