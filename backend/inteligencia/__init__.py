"""
Inteligencia AI generation orchestration backend
"""

__version__ = "1.0.0"
