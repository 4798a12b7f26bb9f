"""SlotSwap - calendar slot exchange backend"""

__version__ = "1.0.0"
