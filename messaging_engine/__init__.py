"""Messaging Delivery Engine

Decides which SMS provider and which message template apply to a send:
- Resolves templates across custom, condition, client and system tiers
- Renders recipient, gift card and custom-field variables
- Delivers through a primary provider with automatic fallback
- Resolves carrier credentials across the client, agency and admin tiers
- Points carrier phone numbers at the inbound webhook endpoints
"""

__version__ = "1.0.0"
