"""
Student Achievements

Achievement reporting and advisor verification for students.
"""

import importlib.metadata

__version__ = importlib.metadata.version("student-achievements")

from .achievements.enums import AchievementStatus, Role
from .achievements.errors import AchievementError

__all__ = [
    "AchievementError",
    "AchievementStatus",
    "Role",
]
