"""
Configuration and environment setup.

This module contains:
- Environment-driven settings for the service
- Supabase connection configuration and client construction
"""

# Configuration modules are loaded as needed
# No direct imports to avoid circular dependencies
