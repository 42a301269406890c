"""
wabridge - WhatsApp channel pairing gateway for the sales dashboard.
"""

__version__ = "0.1.0"
__logo__ = "📱"
