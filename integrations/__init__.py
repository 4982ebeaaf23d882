"""
External integrations: Telegram operator alerts and Expo push delivery.
"""
