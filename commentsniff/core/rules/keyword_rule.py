import re
import logging
from typing import Iterable, Iterator, NamedTuple, Optional, Sequence, Tuple

from commentsniff.config.settings import ConfigError, DEFAULT_KEYWORDS

log = logging.getLogger(__name__)

# `re` has no \p{L}: a Unicode letter is a word character that is neither a
# digit nor an underscore.
NON_LETTER = r"[\W\d_]"
LETTER = r"[^\W\d_]"

WARNING = "Comment contains a discouraged keyword"
WARNING_WITH_MESSAGE = WARNING + ' "%s"'
FINDING_TYPE = "Found"

ASCII_WHITESPACE = " \t\n\r\x0b\x0c\x00"
DELIMITER_CHARS = "-:[](). "
COMMENT_CLOSERS = ("*/", "-->", "-}")


class KeywordFinding(NamedTuple):
    """The verdict for a single comment."""

    matched: bool
    keyword: Optional[str] = None
    message: Optional[str] = None


NO_MATCH = KeywordFinding(False)


class Violation(NamedTuple):
    line: int
    column: int
    type: str
    keyword: str
    template: str
    data: Tuple[str, ...]

    def render(self) -> str:
        return self.template % self.data if self.data else self.template


def validate_keywords(keywords: Iterable[str]) -> Tuple[str, ...]:
    """
    Returns the keyword set as a tuple.

    Raises:
        ConfigError: If the set is empty, a bare string, or holds a blank or
                     non-string entry.
    """
    if isinstance(keywords, str):
        raise ConfigError("Keywords must be a list of strings, not a single string.")
    keywords = tuple(keywords)
    if not keywords:
        raise ConfigError("The keyword set needs at least one keyword.")
    for keyword in keywords:
        if not isinstance(keyword, str) or not keyword.strip():
            raise ConfigError(f"Invalid keyword: {keyword!r}")
    return keywords


def build_pattern(keywords: Sequence[str]) -> "re.Pattern[str]":
    """
    Compiles the whole-word matcher for a keyword set.

    Group 1 is the keyword as written in the comment, group 2 the trailing
    context: one run of non-letters plus everything up to the end of the
    comment, or nothing when the keyword closes the comment.
    """
    keywords = validate_keywords(keywords)
    alternation = "|".join(re.escape(k) for k in keywords)
    # A keyword must not follow a letter; the start of the comment counts as a boundary.
    pattern_str = rf"(?<!{LETTER})({alternation})({NON_LETTER}+.*|\Z)"
    return re.compile(pattern_str, re.IGNORECASE | re.DOTALL)


def trim_delimiters(text: str) -> str:
    return text.strip(DELIMITER_CHARS)


def normalize_message(raw: str) -> str:
    """Turns `keyword + trailing context` into the reported message."""
    message = raw.strip(ASCII_WHITESPACE)
    for closer in COMMENT_CLOSERS:
        if message.endswith(closer):
            message = message[: -len(closer)].strip(ASCII_WHITESPACE)
            break
    return trim_delimiters(message)


def _scan_with(pattern: "re.Pattern[str]", text: str) -> KeywordFinding:
    match = pattern.search(text)
    if match is None:
        return NO_MATCH
    keyword, trailing = match.group(1), match.group(2)
    return KeywordFinding(True, keyword, normalize_message(keyword + trailing))


def scan(keywords: Sequence[str], text: str) -> KeywordFinding:
    """
    Checks one comment for the first whole-word occurrence of any keyword.

    Args:
        keywords (Sequence[str]): Non-empty, ordered keyword set.
        text (str): The raw comment token.

    Returns:
        A KeywordFinding; `matched` is False when no keyword occurs.
    """
    return _scan_with(build_pattern(keywords), text)


def warning_for(finding: KeywordFinding) -> Tuple[str, Tuple[str, ...]]:
    """Picks the warning template and its data for a matched finding."""
    if finding.message:
        return WARNING_WITH_MESSAGE, (finding.message,)
    return WARNING, ()


class KeywordCommentRule:
    """
    A rule that reports comments containing discouraged keywords.
    """

    name = "keyword"

    def __init__(self, keywords: Optional[Iterable[str]] = None):
        """
        Initializes the rule with an immutable keyword set.

        Args:
            keywords (Optional[Iterable[str]]): Keywords to look for. Defaults to
                                                DEFAULT_KEYWORDS.
        """
        self.keywords = validate_keywords(DEFAULT_KEYWORDS if keywords is None else keywords)
        self.pattern = build_pattern(self.keywords)
        log.debug("Keyword rule active for: %s", ", ".join(self.keywords))

    def scan(self, text: str) -> KeywordFinding:
        return _scan_with(self.pattern, text)

    def detect(self, comments: Iterable) -> Iterator[Violation]:
        """
        Scans extracted comments and yields one violation per matching comment.

        Yields:
            Violation(line, column, type, keyword, template, data)
        """
        for comment in comments:
            finding = self.scan(comment.text)
            if not finding.matched:
                continue
            template, data = warning_for(finding)
            yield Violation(comment.line, comment.column, FINDING_TYPE, finding.keyword, template, data)

