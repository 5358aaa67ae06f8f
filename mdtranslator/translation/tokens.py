"""
Token estimation heuristic.

CJK ideographs cost half a token each, every other character a quarter
token; both parts are rounded up separately. This is an upper-bound-ish
estimate for batching and progress display only, never for billing.
"""

import math
import re

CJK_IDEOGRAPH_PATTERN = re.compile(r'[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]')


def count_cjk_ideographs(text: str) -> int:
    """Count CJK ideographs in text."""
    if not text:
        return 0
    return len(CJK_IDEOGRAPH_PATTERN.findall(text))


def estimate_tokens(text: str) -> int:
    """
    Estimate the token count of text.

    Examples:
        >>> estimate_tokens("hello")
        2
        >>> estimate_tokens("你好")
        1
        >>> estimate_tokens("")
        0
    """
    if not text:
        return 0
    cjk_chars = count_cjk_ideographs(text)
    other_chars = len(text) - cjk_chars
    return math.ceil(cjk_chars / 2) + math.ceil(other_chars / 4)
