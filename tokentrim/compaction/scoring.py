"""Importance scoring for conversation messages."""

from tokentrim.compaction.types import ImportanceCategory, Message, ScoringWeights

# Marker groups (matched against lowercased content)
CRITICAL_MARKERS = ("system:", "critical", "error:")
CONFIG_MARKERS = ("config", "setting", "parameter", "max_tokens")
CODE_MARKERS = ("function", "fn ", "def ")
TASK_MARKERS = ("implement", "feature", "how do")
DELIVERY_MARKERS = ("here is", "requested")
THANKS_MARKERS = ("thanks", "thank you")
FOLLOW_UP_MARKERS = ("let me know", "find more information")

CODE_FENCE = "```"


def _contains_any(text: str, markers: tuple[str, ...]) -> bool:
    return any(marker in text for marker in markers)


class ImportanceScorer:
    """
    Scores messages in [0, 1] from content markers and role.

    Starts from a base score, adds bonuses for high-value and
    task-oriented content, subtracts penalties for courtesy filler and
    verbosity, then clips. All weights live in ``ScoringWeights``.
    """

    def __init__(self, weights: ScoringWeights | None = None):
        self.weights = weights or ScoringWeights()

    def score(self, message: Message) -> float:
        w = self.weights
        content = message.content.lower()
        score = w.base

        if _contains_any(content, CRITICAL_MARKERS):
            score += w.critical_bonus
        if _contains_any(content, CONFIG_MARKERS):
            score += w.config_bonus
        if CODE_FENCE in message.content or _contains_any(content, CODE_MARKERS):
            score += w.code_bonus
        if message.role == "system":
            score += w.system_role_bonus

        if _contains_any(content, TASK_MARKERS):
            score += w.task_bonus
        if _contains_any(content, DELIVERY_MARKERS):
            score += w.delivery_bonus

        if _contains_any(content, THANKS_MARKERS):
            score -= w.thanks_penalty
        if _contains_any(content, FOLLOW_UP_MARKERS):
            score -= w.follow_up_penalty
        if "documentation" in content and "information" in content:
            score -= w.pointer_penalty

        if len(message.content) > w.long_length:
            score -= w.long_penalty

        # Rounding keeps sums like 0.3 + 0.3 stable against the thresholds
        return max(0.0, min(1.0, round(score, 6)))

    def categorize(self, score: float) -> ImportanceCategory:
        if score >= self.weights.high_threshold:
            return "high"
        if score >= self.weights.medium_threshold:
            return "medium"
        return "low"

    def __call__(self, message: Message) -> float:
        return self.score(message)


DEFAULT_SCORER = ImportanceScorer()


def score_message(message: Message) -> float:
    """Score a message with the default weights."""
    return DEFAULT_SCORER.score(message)
