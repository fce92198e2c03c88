"""
clinicslots - appointment availability for a single clinic.
"""

__version__ = "0.1.0"
