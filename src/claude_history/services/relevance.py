"""Heuristic relevance scoring for search results."""

from datetime import datetime
from typing import Optional

from claude_history.utils.date_parsing import days_since

TITLE_PHRASE_SCORE = 100
TITLE_WORD_SCORE = 15
FIRST_MESSAGE_PHRASE_SCORE = 50
FIRST_MESSAGE_WORD_SCORE = 10
MAX_OCCURRENCES_PER_WORD = 10
RECENCY_MAX_SCORE = 20
RECENCY_WINDOW_DAYS = 7


def calculate_relevance_score(
    query: str,
    summary: Optional[str],
    custom_title: Optional[str],
    first_user_message: Optional[str],
    all_text: str,
    timestamp: Optional[datetime],
    now: Optional[datetime] = None,
) -> float:
    """Score a conversation against a query.

    A verbatim phrase hit in the title beats any number of body hits; the
    body contributes at most MAX_OCCURRENCES_PER_WORD per word, and
    conversations from the last week get a linearly decaying bonus.
    """
    if not query:
        return 0

    phrase = query.lower()
    words = phrase.split()
    score = 0

    title = (custom_title or summary or "").lower()
    if title:
        if phrase in title:
            score += TITLE_PHRASE_SCORE
        else:
            score += TITLE_WORD_SCORE * sum(1 for w in words if w in title)

    first = (first_user_message or "").lower()
    if first:
        if phrase in first:
            score += FIRST_MESSAGE_PHRASE_SCORE
        else:
            score += FIRST_MESSAGE_WORD_SCORE * sum(1 for w in words if w in first)

    body = all_text.lower()
    for word in words:
        score += min(body.count(word), MAX_OCCURRENCES_PER_WORD)

    if timestamp is not None:
        days = days_since(timestamp, now)
        if 0 <= days < RECENCY_WINDOW_DAYS:
            score += round(RECENCY_MAX_SCORE * (1 - days / RECENCY_WINDOW_DAYS))

    return score
