"""
Strata: a media session orchestrator with automatic error recovery, subtitle
delivery and progressive/HLS download support.
"""

__version__ = "1.4.0"
