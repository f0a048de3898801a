"""
Price Editor Package

A pricing-change authoring workflow for catalog operators.
Resolves an editing context, edits a price matrix against the active baseline,
and hands a validated change set to a GTM motion.
"""

__version__ = "1.0.0"
