"""
access-bot: Purchase-backed role access for a Discord community.

Links checkout emails to Discord members, grants the highest tier role their
paid Shopify orders entitle them to, and periodically downgrades members whose
subscriptions have lapsed.
"""

__version__ = "0.1.0"
