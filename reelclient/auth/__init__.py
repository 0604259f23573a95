"""
Authentication package for the Movie Review Client.

This package contains authentication-related functionality including
credential storage, coordinated token refresh, and session state management.
"""
