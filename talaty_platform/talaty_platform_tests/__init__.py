"""
talaty_platform_tests package

Tests for the Talaty authentication service:

- credential validation rules (`test_validation.py`)
- password hashing, token lifecycle and field encryption
- HTTP flows for registration, login, refresh, email verification and
  password reset
"""
