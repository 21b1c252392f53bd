"""
Test suite for the MedBook appointment service.

Contains API-level and service-level tests for accounts, practitioners,
specialties, bookings and consultation sessions.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
