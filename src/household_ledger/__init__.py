"""
Household Ledger: ядро жизненного цикла запланированных операций
для мультивалютного домашнего бюджета.
"""

__version__ = "1.0.0"
