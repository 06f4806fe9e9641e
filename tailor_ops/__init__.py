"""
Tailor Ops Package

Backend for a tailoring shop built on Supabase, covering:
- Customer and tailor order write paths
- Live order feeds and change notifications
- Due-date warnings and the tailor's calendar
- Inspiration photo storage and status emails
"""

__version__ = "1.0.0"
__author__ = "Tailor Ops Team"

# Submodules are imported on demand so the core stays free of SDK imports
