"""
AI Module

This module provides the AI translation capability and its provider adapters.
"""

from mdtranslator.ai.service import AIService, TranslateOptions, TranslationResult, validate_ai_config

__all__ = ['AIService', 'TranslateOptions', 'TranslationResult', 'validate_ai_config']
