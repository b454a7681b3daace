"""Subscription and value state.

This package holds the entity→dependent index that defines which ioBroker
states must be subscribed, and the cache of the latest values received.
"""
