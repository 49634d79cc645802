"""
Lexical scanning primitives shared by the dialect validators and the metrics calculator.

Nothing here parses. The helpers work on lines of text and provide:
- column-preserving masking of string literals and comments, so keyword patterns
  do not fire inside "SELECT * FROM" strings or commented-out code
- offset -> (line, column) conversion for whole-text regex matches
- delimiter balance checking across lines
- a block tracker that knows the nesting level and loop depth at any (line, column)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from ...models.linting import Dialect


def split_lines(code: str) -> List[str]:
    """Split source into lines (index 0 is line 1), dropping CR from CRLF endings."""
    return [line.rstrip("\r") for line in (code or "").split("\n")]


def offset_to_position(text: str, offset: int) -> Tuple[int, int]:
    """Convert a character offset into a 1-based line and 0-based column."""
    offset = max(0, min(offset, len(text)))
    line = text.count("\n", 0, offset) + 1
    column = offset - (text.rfind("\n", 0, offset) + 1)
    return line, column


def leading_indent(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


# ---------------------------------------------------------------------------
# Literal / comment masking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LexicalSyntax:
    line_comment: Optional[str] = None
    block_comment: Optional[Tuple[str, str]] = None
    quotes: str = "\"'"
    backslash_escapes: bool = False
    multiline_strings: bool = False


LEXICAL_SYNTAX: Dict[Dialect, LexicalSyntax] = {
    Dialect.AMPSCRIPT: LexicalSyntax(block_comment=("/*", "*/"), quotes="\"'"),
    Dialect.SSJS: LexicalSyntax(line_comment="//", block_comment=("/*", "*/"), quotes="\"'`", backslash_escapes=True),
    Dialect.JAVASCRIPT: LexicalSyntax(line_comment="//", block_comment=("/*", "*/"), quotes="\"'`", backslash_escapes=True),
    Dialect.SQL: LexicalSyntax(line_comment="--", block_comment=("/*", "*/"), quotes="'", multiline_strings=True),
    Dialect.CSS: LexicalSyntax(block_comment=("/*", "*/"), quotes="\"'"),
    Dialect.HTML: LexicalSyntax(block_comment=("<!--", "-->"), quotes=""),
}


@dataclass
class MaskedLine:
    """A source line with literal contents and comments blanked out."""

    number: int
    raw: str
    masked: str

    @property
    def is_blank(self) -> bool:
        return not self.masked.strip()


@dataclass
class MaskedSource:
    lines: List[MaskedLine]
    # (line, column) of each string literal that never closed
    unterminated_strings: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(line.masked for line in self.lines)


def mask_lines(lines: Sequence[str], syntax: LexicalSyntax) -> MaskedSource:
    """
    Blank out comment text and string-literal contents, preserving columns.

    Quote characters themselves are kept so callers can still see that a literal
    was present; everything between them becomes spaces.
    """
    out: List[MaskedLine] = []
    unterminated: List[Tuple[int, int]] = []

    in_block = False
    open_quote: Optional[str] = None
    quote_start: Optional[Tuple[int, int]] = None

    for idx, raw in enumerate(lines, start=1):
        chars = list(raw)
        i = 0
        n = len(raw)
        while i < n:
            if in_block:
                end = syntax.block_comment[1]
                if raw.startswith(end, i):
                    for j in range(i, i + len(end)):
                        chars[j] = " "
                    i += len(end)
                    in_block = False
                else:
                    chars[i] = " "
                    i += 1
                continue

            if open_quote is not None:
                ch = raw[i]
                if syntax.backslash_escapes and ch == "\\" and i + 1 < n:
                    chars[i] = " "
                    chars[i + 1] = " "
                    i += 2
                    continue
                if ch == open_quote:
                    open_quote = None
                    quote_start = None
                else:
                    chars[i] = " "
                i += 1
                continue

            if syntax.block_comment and raw.startswith(syntax.block_comment[0], i):
                start = syntax.block_comment[0]
                for j in range(i, i + len(start)):
                    chars[j] = " "
                i += len(start)
                in_block = True
                continue

            if syntax.line_comment and raw.startswith(syntax.line_comment, i):
                for j in range(i, n):
                    chars[j] = " "
                break

            if raw[i] in syntax.quotes:
                open_quote = raw[i]
                quote_start = (idx, i)
            i += 1

        if open_quote is not None and not syntax.multiline_strings and open_quote != "`":
            unterminated.append(quote_start)
            open_quote = None
            quote_start = None

        out.append(MaskedLine(number=idx, raw=raw, masked="".join(chars)))

    if open_quote is not None and quote_start is not None:
        unterminated.append(quote_start)

    return MaskedSource(lines=out, unterminated_strings=unterminated)


def mask_source(code: str, dialect: Dialect) -> MaskedSource:
    return mask_lines(split_lines(code), LEXICAL_SYNTAX.get(dialect, LexicalSyntax()))


# ---------------------------------------------------------------------------
# Delimiter balance
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DelimiterIssue:
    line: int
    column: int
    char: str
    kind: str  # "unclosed" | "unexpected"


def unbalanced_delimiters(lines: Sequence[MaskedLine], pairs: str = "(){}[]") -> List[DelimiterIssue]:
    """Find unclosed openers and unexpected closers across the whole text."""
    openers = {pairs[i]: pairs[i + 1] for i in range(0, len(pairs), 2)}
    closers = {v: k for k, v in openers.items()}

    stack: List[Tuple[str, int, int]] = []
    issues: List[DelimiterIssue] = []

    for line in lines:
        for col, ch in enumerate(line.masked):
            if ch in openers:
                stack.append((ch, line.number, col))
            elif ch in closers:
                wanted = closers[ch]
                depth = next((k for k in range(len(stack) - 1, -1, -1) if stack[k][0] == wanted), None)
                if depth is None:
                    issues.append(DelimiterIssue(line=line.number, column=col, char=ch, kind="unexpected"))
                    continue
                # Anything opened after the match was never closed
                for opener, o_line, o_col in stack[depth + 1:]:
                    issues.append(DelimiterIssue(line=o_line, column=o_col, char=opener, kind="unclosed"))
                del stack[depth:]

    for opener, o_line, o_col in stack:
        issues.append(DelimiterIssue(line=o_line, column=o_col, char=opener, kind="unclosed"))

    return sorted(issues, key=lambda d: (d.line, d.column))


# ---------------------------------------------------------------------------
# Block / loop tracking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BlockToken:
    """
    One kind of structural token.

    action: "open", "open_loop", "close" or "loop_header"
    family: openers and closers only pair up within the same family
    counted: whether frames opened by this token count toward nesting
    consumes_header: an opener that turns a pending loop header into a loop frame
    """

    pattern: str
    action: str
    family: str = "brace"
    counted: bool = True
    consumes_header: bool = False
    ignore_case: bool = False
    # For closers: only frames whose opening lexeme matches this pattern are closed
    closes: Optional[str] = None

    def compile(self) -> Pattern[str]:
        return re.compile(self.pattern, re.IGNORECASE if self.ignore_case else 0)


@dataclass(frozen=True)
class BlockSyntax:
    tokens: Tuple[BlockToken, ...]
    # A loop header without its own opener applies to the next statement
    bodyless_loops: bool = False


_BRACE_TOKENS = (
    BlockToken(r"\bwhile\s*\((?!.*\)\s*;\s*$)", "loop_header"),
    BlockToken(r"\bfor\s*\(", "loop_header"),
    BlockToken(r"\bdo\b", "loop_header"),
    BlockToken(r"\.forEach\s*\(", "loop_header"),
    BlockToken(r"\{", "open", consumes_header=True),
    BlockToken(r"\}", "close"),
)

BLOCK_SYNTAX: Dict[Dialect, BlockSyntax] = {
    Dialect.SSJS: BlockSyntax(tokens=_BRACE_TOKENS, bodyless_loops=True),
    Dialect.JAVASCRIPT: BlockSyntax(tokens=_BRACE_TOKENS, bodyless_loops=True),
    Dialect.CSS: BlockSyntax(tokens=(BlockToken(r"\{", "open"), BlockToken(r"\}", "close"))),
    Dialect.AMPSCRIPT: BlockSyntax(tokens=(
        BlockToken(r"\bFOR\b", "open_loop", family="keyword", ignore_case=True),
        BlockToken(r"\bIF\b", "open", family="keyword", ignore_case=True),
        BlockToken(r"\bNEXT\b", "close", family="keyword", ignore_case=True, closes="FOR"),
        BlockToken(r"\bENDIF\b", "close", family="keyword", ignore_case=True, closes="IF"),
    )),
    Dialect.SQL: BlockSyntax(tokens=(
        BlockToken(r"\bWHILE\b", "loop_header", family="keyword", ignore_case=True),
        BlockToken(r"\bBEGIN\b(?!\s+TRAN)", "open", family="keyword", consumes_header=True, ignore_case=True),
        BlockToken(r"\bCASE\b", "open", family="keyword", ignore_case=True),
        BlockToken(r"\bEND\b", "close", family="keyword", ignore_case=True),
        BlockToken(r"\(\s*SELECT\b", "open", family="paren", ignore_case=True),
        BlockToken(r"\(", "open", family="paren", counted=False),
        BlockToken(r"\)", "close", family="paren"),
    ), bodyless_loops=True),
    Dialect.HTML: BlockSyntax(tokens=()),
}


@dataclass
class Frame:
    kind: str  # "block" | "loop"
    family: str
    counted: bool
    line: int
    column: int
    token: str


@dataclass
class LoopSite:
    line: int
    column: int
    depth: int  # 1 for an outermost loop


@dataclass
class _LineState:
    nesting: int
    loop_depth: int
    # (column, nesting, loop_depth) after each structural change on the line
    events: List[Tuple[int, int, int]] = field(default_factory=list)


@dataclass
class BlockMap:
    """Result of a block-tracking scan."""

    states: Dict[int, _LineState]
    max_nesting: int = 0
    loops: List[LoopSite] = field(default_factory=list)
    unclosed: List[Frame] = field(default_factory=list)
    unexpected_closers: List[Tuple[int, int, str]] = field(default_factory=list)

    def depth_at(self, line: int, column: int = 0) -> Tuple[int, int]:
        """(nesting level, loop depth) in effect just before `column` on `line`."""
        state = self.states.get(line)
        if state is None:
            return 0, 0
        nesting, loops = state.nesting, state.loop_depth
        for col, n, lp in state.events:
            if col <= column:
                nesting, loops = n, lp
            else:
                break
        return nesting, loops

    def nesting_at(self, line: int, column: int = 0) -> int:
        return self.depth_at(line, column)[0]

    def loop_depth_at(self, line: int, column: int = 0) -> int:
        return self.depth_at(line, column)[1]


class BlockTracker:
    """Track block nesting and loop depth over masked lines."""

    def __init__(self, syntax: BlockSyntax):
        self.syntax = syntax
        self._compiled = [(tok, tok.compile()) for tok in syntax.tokens]

    @classmethod
    def for_dialect(cls, dialect: Dialect) -> "BlockTracker":
        return cls(BLOCK_SYNTAX.get(dialect, BlockSyntax(tokens=())))

    def _tokens_on(self, text: str) -> List[Tuple[int, int, BlockToken, str]]:
        found: Dict[int, Tuple[int, int, int, BlockToken, str]] = {}
        for priority, (tok, regex) in enumerate(self._compiled):
            for m in regex.finditer(text):
                if m.start() in found and found[m.start()][0] <= priority:
                    continue
                found[m.start()] = (priority, m.start(), m.end(), tok, m.group(0))
        return [(start, end, tok, lexeme) for _, start, end, tok, lexeme in sorted(found.values(), key=lambda t: t[1])]

    def scan(self, lines: Sequence[MaskedLine]) -> BlockMap:
        stack: List[Frame] = []
        result = BlockMap(states={})
        pending_header = False
        bodyless_open = False

        def levels() -> Tuple[int, int]:
            return (
                sum(1 for f in stack if f.counted),
                sum(1 for f in stack if f.kind == "loop"),
            )

        for line in lines:
            tokens = self._tokens_on(line.masked)

            if pending_header and self.syntax.bodyless_loops and not line.is_blank:
                first = tokens[0][2] if tokens else None
                if not (first and first.action == "open" and first.consumes_header):
                    # Single-statement loop body on this line
                    stack.append(Frame("loop", "bodyless", True, line.number, 0, ""))
                    result.loops.append(LoopSite(line.number, 0, levels()[1]))
                    bodyless_open = True
                    pending_header = False

            nesting, loop_depth = levels()
            state = _LineState(nesting=nesting, loop_depth=loop_depth)
            result.max_nesting = max(result.max_nesting, nesting)

            for start, end, tok, lexeme in tokens:
                if tok.action == "loop_header":
                    pending_header = True
                    continue

                if tok.action in ("open", "open_loop"):
                    is_loop = tok.action == "open_loop" or (pending_header and tok.consumes_header)
                    if tok.consumes_header:
                        pending_header = False
                    stack.append(Frame("loop" if is_loop else "block", tok.family, tok.counted, line.number, start, lexeme))
                    n, lp = levels()
                    if is_loop:
                        result.loops.append(LoopSite(line.number, start, lp))
                    state.events.append((end, n, lp))
                    result.max_nesting = max(result.max_nesting, n)
                    continue

                # close
                idx = next(
                    (
                        k for k in range(len(stack) - 1, -1, -1)
                        if stack[k].family == tok.family
                        and (tok.closes is None or stack[k].token.upper() == tok.closes)
                    ),
                    None,
                )
                if idx is None:
                    result.unexpected_closers.append((line.number, start, lexeme))
                    continue
                result.unclosed.extend(f for f in stack[idx + 1:] if f.family != "bodyless")
                del stack[idx:]
                n, lp = levels()
                state.events.append((start, n, lp))

            result.states[line.number] = state

            if bodyless_open and not line.is_blank:
                stack[:] = [f for f in stack if f.family != "bodyless"]
                bodyless_open = False

            # `for (...) stmt;` keeps its body on the header line
            if pending_header and self.syntax.bodyless_loops and line.masked.rstrip().endswith(";"):
                pending_header = False

        result.unclosed.extend(f for f in stack if f.family != "bodyless")
        return result


def call_arguments(masked: str, open_paren: int) -> Optional[List[Tuple[int, int]]]:
    """
    Split the argument list of a call whose "(" sits at `open_paren`.

    Works on a masked line so commas inside literals are ignored. Returns the
    (start, end) span of each argument, or None if the call is not closed on
    this line.
    """
    depth = 0
    spans: List[Tuple[int, int]] = []
    start = open_paren + 1
    for i in range(open_paren, len(masked)):
        ch = masked[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth == 0:
                if masked[start:i].strip() or spans:
                    spans.append((start, i))
                return spans
        elif ch == "," and depth == 1:
            spans.append((start, i))
            start = i + 1
    return None
