# FILE: attempt_engine/models/__init__.py
"""
Pydantic models for the attempt engine
"""
from attempt_engine.models.activities import *
from attempt_engine.models.attempts import *
from attempt_engine.models.settings import *
