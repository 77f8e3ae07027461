"""
Profile domain module
"""
from .models import ConnectionProfile
from .parser import LinkParser, ParseStrategy
from .service import ProfileService

__all__ = ["ConnectionProfile", "LinkParser", "ParseStrategy", "ProfileService"]
