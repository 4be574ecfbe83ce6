"""
API module for Irtiqa.

Provides REST API routes for:
- Consultation intake and case handling
- Crisis panic button and hotlines
- Crisis alert queue (acknowledge, resolve)
- Case team management (invite, approve, refer, remove)
"""
