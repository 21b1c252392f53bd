"""
MedBook Appointment Service

A FastAPI-based backend for booking medical consultations: patient and
doctor accounts, specialties, time slots, the booking lifecycle, and
doctor-patient messaging sessions.
"""

__version__ = "1.0.0"
