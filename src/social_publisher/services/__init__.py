"""Application services.

Modules are imported directly (``from social_publisher.services.accounts
import ...``); nothing is re-exported here so the API, worker and CLI can
each load only what they use.
"""
