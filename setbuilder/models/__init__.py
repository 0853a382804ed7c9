"""SQLAlchemy database models."""
from dotenv import load_dotenv

from setbuilder.models.base import Base
from setbuilder.models.set_builder import AutomatedSetBuilderConfig, CollectionTriviaSet
from setbuilder.models.source_content import SourceContentIngested
from setbuilder.models.trivia import (
    MultipleChoiceTriviaSet,
    TriviaMultipleChoice,
    TriviaTrueFalse,
    TriviaWhoAmI,
    TrueFalseTriviaSet,
    WhoAmITriviaSet,
)

load_dotenv()

__all__ = [
    "Base",
    "TriviaMultipleChoice",
    "TriviaTrueFalse",
    "TriviaWhoAmI",
    "MultipleChoiceTriviaSet",
    "TrueFalseTriviaSet",
    "WhoAmITriviaSet",
    "AutomatedSetBuilderConfig",
    "CollectionTriviaSet",
    "SourceContentIngested",
]
