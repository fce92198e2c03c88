"""
Adapters layer - External integrations (clinic REST API, local fixtures).
"""

from .clinic_api_client import ClinicApiClient
from .mock_clinic_client import MockClinicClient

__all__ = ["ClinicApiClient", "MockClinicClient"]
