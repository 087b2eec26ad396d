"""
App Store Review Intelligence.

Aggregates App Store listings, reviews and screenshots for a search keyword,
asks an LLM to synthesize them, and caches everything in SQLite so repeated
runs don't hit the network or the LLM again.
"""
