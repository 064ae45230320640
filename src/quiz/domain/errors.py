class QuizError(Exception):
    """Base class for quiz engine failures."""


class QuestionNotFoundError(QuizError):
    """The question source does not know the requested area/subject."""

    def __init__(self, area: str, subject: str | None = None) -> None:
        self.area = area
        self.subject = subject
        target = f"{area}/{subject}" if subject else area
        super().__init__(f"No question bank for '{target}'")


class SourceUnavailableError(QuizError):
    """The question source backend failed."""


class StorageError(QuizError):
    """A key-value store read or write failed."""


class InvalidConfigError(QuizError):
    """A raw session configuration could not be validated."""
