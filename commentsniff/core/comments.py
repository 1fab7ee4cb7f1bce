import io
import re
import bisect
import logging
import tokenize
from functools import lru_cache
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

log = logging.getLogger(__name__)


class Comment(NamedTuple):
    text: str
    line: int
    column: int


class CommentStyle(NamedTuple):
    line_prefixes: Tuple[str, ...] = ()
    blocks: Tuple[Tuple[str, str], ...] = ()
    # Off for markup, where quotes are prose.
    skip_strings: bool = True


_C_STYLE = CommentStyle(("//",), (("/*", "*/"),))
_HASH_STYLE = CommentStyle(("#",))
_MARKUP_STYLE = CommentStyle((), (("<!--", "-->"),), skip_strings=False)

COMMENT_STYLES: Dict[str, CommentStyle] = {
    **dict.fromkeys(
        [".c", ".h", ".cc", ".cpp", ".hpp", ".cs", ".java", ".kt", ".scala", ".swift",
         ".go", ".rs", ".js", ".jsx", ".mjs", ".ts", ".tsx", ".dart", ".scss", ".less"],
        _C_STYLE,
    ),
    **dict.fromkeys(
        [".sh", ".bash", ".zsh", ".rb", ".pl", ".r", ".yaml", ".yml", ".toml", ".cfg",
         ".mk", ".dockerfile"],
        _HASH_STYLE,
    ),
    **dict.fromkeys([".html", ".htm", ".xml", ".vue", ".svg", ".md"], _MARKUP_STYLE),
    ".php": CommentStyle(("//", "#"), (("/*", "*/"),)),
    ".css": CommentStyle((), (("/*", "*/"),)),
    ".sql": CommentStyle(("--",), (("/*", "*/"),)),
    ".lua": CommentStyle(("--",)),
    ".hs": CommentStyle(("--",), (("{-", "-}"),)),
    ".ini": CommentStyle((";", "#")),
}

PYTHON_SUFFIXES = (".py", ".pyi", ".pyw")

_STRING_LITERAL = r"""(?P<string>"(?:\\.|[^"\\\n])*"|'(?:\\.|[^'\\\n])*')"""


@lru_cache(maxsize=None)
def _compile_style(style: CommentStyle) -> "re.Pattern[str]":
    comment_parts = [
        rf"{re.escape(start)}.*?(?:{re.escape(end)}|\Z)" for start, end in style.blocks
    ]
    if style.line_prefixes:
        prefixes = "|".join(re.escape(p) for p in style.line_prefixes)
        comment_parts.append(rf"(?:{prefixes})[^\n]*")

    parts = [_STRING_LITERAL] if style.skip_strings else []
    parts.append(r"(?P<comment>" + "|".join(comment_parts) + r")")
    return re.compile("|".join(parts), re.DOTALL)


def style_for(suffix: str) -> Optional[CommentStyle]:
    suffix = suffix.lower()
    if suffix in PYTHON_SUFFIXES:
        return _HASH_STYLE
    return COMMENT_STYLES.get(suffix)


def _python_comments(content: str) -> Iterator[Comment]:
    for token in tokenize.generate_tokens(io.StringIO(content).readline):
        if token.type == tokenize.COMMENT:
            line, col = token.start
            yield Comment(token.string, line, col + 1)


def _pattern_comments(content: str, style: CommentStyle) -> Iterator[Comment]:
    pattern = _compile_style(style)
    line_starts: List[int] = [0] + [m.end() for m in re.finditer("\n", content)]

    for match in pattern.finditer(content):
        if match.lastgroup != "comment":
            continue
        offset = match.start()
        line_index = bisect.bisect_right(line_starts, offset) - 1
        yield Comment(match.group(0), line_index + 1, offset - line_starts[line_index] + 1)


def extract_comments(content: str, suffix: str) -> List[Comment]:
    """
    Collects the comment tokens of a source file.

    Args:
        content (str): The file content.
        suffix (str): The file extension, including the dot (e.g. '.py').

    Returns:
        Comments in source order; empty when the file type has no known comment syntax.
    """
    if suffix.lower() in PYTHON_SUFFIXES:
        try:
            return list(_python_comments(content))
        except (SyntaxError, tokenize.TokenError) as e:
            log.debug("Tokenizer failed (%s); falling back to line-based comment search.", e)

    style = style_for(suffix)
    if style is None:
        return []
    return list(_pattern_comments(content, style))
