"""
Shared components for the Movie Review Client.

This package contains the data models, interfaces, exception hierarchy and
logging configuration used by the client package.
"""
