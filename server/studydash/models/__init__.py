from studydash.models.base import Base
from studydash.models.slide import Slide
from studydash.models.quiz import Quiz
from studydash.models.auth_session import AuthSession

__all__ = ["Base", "Slide", "Quiz", "AuthSession"]
