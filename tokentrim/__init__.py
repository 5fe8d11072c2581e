"""
tokentrim - Token-budget compaction for conversational agent histories
"""

__version__ = "0.1.0"
__logo__ = "✂️"
