"""
API module for the REST interface.
"""

from .rest_api import FieldTrainingRestAPI, get_actor, status_code_for

__all__ = [
    "FieldTrainingRestAPI",
    "get_actor",
    "status_code_for",
]
