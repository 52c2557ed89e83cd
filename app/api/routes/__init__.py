"""
API routes.

This module organizes routes into:
- players: listing, search, registration and player detail
- tracking: tracking status, rebalance and manual tracking cycles
"""
