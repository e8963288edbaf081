"""Credential and session store adapters.

``memory`` is always available; ``sqlalchemy`` requires the
``atlas-mfa[sqlalchemy]`` extra.
"""
