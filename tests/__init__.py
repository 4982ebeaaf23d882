"""
Test suite for the Weekly Allocation API.

Run all tests: pytest
Run with coverage: pytest --cov=. --cov-report=html
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_materialization_service.py -v
"""
