"""
Target languages accepted for document translation.

Codes are ISO 639-1 (``ja``) or BCP 47 language-region tags (``zh-CN``).
The English name is what the prompts show the model; the code is what is
stored on translation records and in ``data.lang`` of translated documents.
"""

from typing import Dict, Optional

TARGET_LANGUAGES: Dict[str, str] = {
    'ar': 'Arabic',
    'de': 'German',
    'en': 'English',
    'es': 'Spanish',
    'fr': 'French',
    'hi': 'Hindi',
    'id': 'Indonesian',
    'it': 'Italian',
    'ja': 'Japanese',
    'ko': 'Korean',
    'nl': 'Dutch',
    'pl': 'Polish',
    'pt': 'Portuguese',
    'ru': 'Russian',
    'th': 'Thai',
    'tr': 'Turkish',
    'uk': 'Ukrainian',
    'vi': 'Vietnamese',
    'zh': 'Chinese',
    # Regional variants
    'en-US': 'English (United States)',
    'en-GB': 'English (United Kingdom)',
    'es-ES': 'Spanish (Spain)',
    'es-MX': 'Spanish (Mexico)',
    'pt-BR': 'Portuguese (Brazil)',
    'pt-PT': 'Portuguese (Portugal)',
    'zh-CN': 'Simplified Chinese',
    'zh-TW': 'Traditional Chinese',
    'zh-HK': 'Traditional Chinese (Hong Kong)',
}

_CANONICAL = {code.lower(): code for code in TARGET_LANGUAGES}


def normalize_language_code(code: Optional[str]) -> Optional[str]:
    """
    Canonical spelling of a supported code, or None.

    Examples:
        >>> normalize_language_code('zh_cn')
        'zh-CN'
        >>> normalize_language_code(' JA ')
        'ja'
        >>> normalize_language_code('klingon') is None
        True
    """
    if not isinstance(code, str):
        return None
    return _CANONICAL.get(code.strip().replace('_', '-').lower())


def is_valid_language_code(code: Optional[str]) -> bool:
    return normalize_language_code(code) is not None


def get_language_name(code: Optional[str]) -> Optional[str]:
    """
    English name of a language code, as used in prompts.

    Examples:
        >>> get_language_name('zh-CN')
        'Simplified Chinese'
        >>> get_language_name('pt-br')
        'Portuguese (Brazil)'
    """
    canonical = normalize_language_code(code)
    return TARGET_LANGUAGES[canonical] if canonical else None
