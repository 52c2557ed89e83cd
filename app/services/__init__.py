"""
Services module for the rating tracker's business logic.

This module organizes services into:
- core: Cross-cutting helpers (the GeoGuessr circuit breaker)
- geoguessr: GeoGuessr API client and payload normalization
- tracking: Tracking rotation, rating sync, player detail and registration
"""
