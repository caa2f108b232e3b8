"""
Tests for the toolkit app.

- test_helpers.py: account number and email masking
- test_email.py: EmailService template and raw sends

Usage:
    pytest app/toolkit/tests/
"""
