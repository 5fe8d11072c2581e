"""Essential-message classification."""

from typing import Iterable

from tokentrim.compaction.types import DEFAULT_ESSENTIAL_KEYWORDS, Message


class EssentialClassifier:
    """
    Flags messages that must survive every compaction.

    A message is essential when its content contains any of the keywords,
    compared case-insensitively.
    """

    def __init__(self, keywords: Iterable[str] = DEFAULT_ESSENTIAL_KEYWORDS):
        self.keywords = tuple(k.lower() for k in keywords)

    def is_essential(self, message: Message) -> bool:
        content = message.content.lower()
        return any(keyword in content for keyword in self.keywords)

    def __call__(self, message: Message) -> bool:
        return self.is_essential(message)


DEFAULT_CLASSIFIER = EssentialClassifier()


def is_essential(message: Message) -> bool:
    """Check a message against the default keyword set."""
    return DEFAULT_CLASSIFIER.is_essential(message)
