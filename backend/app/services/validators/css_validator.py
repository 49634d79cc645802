"""
CSS validator for email and CloudPages stylesheets.

Rules are read from the masked text (comments and string contents blanked), so
braces and semicolons inside `content: "{;"` or comments never split anything.
Only innermost `selector { declarations }` blocks are checked; at-rule wrappers
such as @media are transparent.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from ...models.linting import Diagnostic, DiagnosticCategory, Dialect, Impact, Severity, Suggestion, SuggestionKind
from . import ScriptDialectValidator, ValidatorRegistry, diag
from .text_scan import LEXICAL_SYNTAX, MaskedSource, mask_lines, mask_source, offset_to_position, unbalanced_delimiters

logger = logging.getLogger(__name__)


MAX_SELECTOR_IDS = 1
MAX_SELECTOR_CLASSES = 4

KNOWN_PROPERTIES = frozenset("""
    align-content align-items align-self all animation animation-delay animation-direction
    animation-duration animation-fill-mode animation-iteration-count animation-name
    animation-play-state animation-timing-function appearance aspect-ratio backdrop-filter
    backface-visibility background background-attachment background-blend-mode background-clip
    background-color background-image background-origin background-position background-repeat
    background-size block-size border border-block border-bottom border-bottom-color
    border-bottom-left-radius border-bottom-right-radius border-bottom-style border-bottom-width
    border-collapse border-color border-image border-inline border-left border-left-color
    border-left-style border-left-width border-radius border-right border-right-color
    border-right-style border-right-width border-spacing border-style border-top border-top-color
    border-top-left-radius border-top-right-radius border-top-style border-top-width border-width
    bottom box-shadow box-sizing break-after break-before break-inside caption-side caret-color
    clear clip clip-path color column-count column-gap column-rule column-span column-width
    columns contain content counter-increment counter-reset cursor direction display
    empty-cells fill filter flex flex-basis flex-direction flex-flow flex-grow flex-shrink
    flex-wrap float font font-display font-family font-feature-settings font-kerning font-size
    font-stretch font-style font-variant font-weight gap grid grid-area grid-auto-columns
    grid-auto-flow grid-auto-rows grid-column grid-column-end grid-column-start grid-gap
    grid-row grid-row-end grid-row-start grid-template grid-template-areas grid-template-columns
    grid-template-rows height hyphens image-rendering inline-size inset isolation justify-content
    justify-items justify-self left letter-spacing line-break line-height list-style
    list-style-image list-style-position list-style-type margin margin-block margin-bottom
    margin-inline margin-left margin-right margin-top mask max-height max-width min-height
    min-width mix-blend-mode mso-hide mso-line-height-rule mso-table-lspace mso-table-rspace
    object-fit object-position opacity order orphans outline outline-color outline-offset
    outline-style outline-width overflow overflow-wrap overflow-x overflow-y padding
    padding-block padding-bottom padding-inline padding-left padding-right padding-top
    page-break-after page-break-before page-break-inside perspective place-content place-items
    place-self pointer-events position quotes resize right rotate row-gap scale scroll-behavior
    scroll-margin scroll-padding scroll-snap-align scroll-snap-type src stroke stroke-width
    tab-size table-layout text-align text-align-last text-decoration text-decoration-color
    text-decoration-line text-decoration-style text-indent text-overflow text-rendering
    text-shadow text-size-adjust text-transform text-underline-offset top touch-action transform
    transform-origin transform-style transition transition-delay transition-duration
    transition-property transition-timing-function translate unicode-bidi unicode-range
    user-select vertical-align visibility white-space widows width will-change word-break
    word-spacing word-wrap writing-mode z-index zoom
""".split())

VALID_UNITS = frozenset("""
    px em rem % vh vw vmin vmax svh lvh dvh pt pc in cm mm q ex ch lh s ms deg grad rad turn
    fr dpi dpcm dppx x hz khz
""".split())

EXPENSIVE_PROPERTIES = frozenset({"box-shadow", "filter", "backdrop-filter"})

_RULE_RE = re.compile(r"([^{}]*)\{([^{}]*)\}")
_DECLARATION_RE = re.compile(r"\s*([-\w]+)\s*:(.*)", re.DOTALL)
# A newline followed by `prop:` inside one declaration means a semicolon is missing
_NEXT_PROPERTY_RE = re.compile(r"\n(?=[ \t]*[-\w]+[ \t]*:)")
_URL_RE = re.compile(r"url\([^)]*\)", re.IGNORECASE)
_HEX_RE = re.compile(r"#([0-9A-Za-z]+)")
_DIMENSION_RE = re.compile(r"(?<![\w.#-])(\d*\.?\d+)([a-zA-Z]+|%)")
_LAYOUT_PROPERTY_RE = re.compile(r"\b(?:width|height|top|left|right|bottom|margin|padding)", re.IGNORECASE)
_UNIVERSAL_RE = re.compile(r"(?:^|[\s>+~(])\*(?=$|[\s>+~,:.\[)#])")
_OUTLINE_NONE_RE = re.compile(r"(outline\s*:\s*)(?:none|0)\b", re.IGNORECASE)
_FOCUS_RE = re.compile(r":focus(?![-\w])")


@dataclass
class Declaration:
    prop: str
    value: str
    offset: int  # of the property name
    value_offset: int


@dataclass
class Rule:
    selector: str
    offset: int  # of the selector text
    declarations: List[Declaration] = field(default_factory=list)
    # Offsets where a declaration ran into the next one without a semicolon
    missing_semicolons: List[int] = field(default_factory=list)
    # (offset, text) of segments that are not `property: value`
    invalid: List[tuple] = field(default_factory=list)

    @property
    def is_at_rule(self) -> bool:
        return self.selector.startswith("@")

    def get(self, prop: str) -> Optional[Declaration]:
        return next((d for d in self.declarations if d.prop == prop), None)


def parse_rules(text: str) -> List[Rule]:
    """Innermost rule blocks of masked CSS, with every offset into `text`."""
    rules: List[Rule] = []
    for m in _RULE_RE.finditer(text):
        head = m.group(1)
        cut = head.rfind(";") + 1
        selector = head[cut:].strip()
        rule = Rule(selector=selector, offset=m.start(1) + cut + (len(head[cut:]) - len(head[cut:].lstrip())))

        body, base = m.group(2), m.start(2)
        start = 0
        for end in [i for i, ch in enumerate(body) if ch == ";"] + [len(body)]:
            segment = body[start:end]
            pieces = _NEXT_PROPERTY_RE.split(segment)
            piece_start = base + start
            for i, piece in enumerate(pieces):
                if i < len(pieces) - 1 and piece.strip():
                    rule.missing_semicolons.append(piece_start + len(piece.rstrip()))
                _add_declaration(rule, piece, piece_start)
                piece_start += len(piece) + 1
            start = end + 1
        rules.append(rule)
    return rules


def _add_declaration(rule: Rule, piece: str, offset: int) -> None:
    if not piece.strip():
        return
    m = _DECLARATION_RE.match(piece)
    lead = len(piece) - len(piece.lstrip())
    if not m or not m.group(2).strip():
        rule.invalid.append((offset + lead, piece.strip()))
        return
    value = m.group(2)
    value_lead = len(value) - len(value.lstrip())
    rule.declarations.append(Declaration(
        prop=m.group(1).lower(),
        value=value.strip(),
        offset=offset + m.start(1),
        value_offset=offset + m.start(2) + value_lead,
    ))


def _is_custom_or_vendor(prop: str) -> bool:
    return prop.startswith("-")


def _fix_missing_semicolon(line: str, d: Diagnostic) -> Optional[str]:
    masked = mask_lines([line], LEXICAL_SYNTAX[Dialect.CSS]).lines[0].masked
    end = len(masked.rstrip())
    if end == 0 or masked[end - 1] in ";{}":
        return None
    return line[:end] + ";" + line[end:]


def _fix_focus_outline(line: str, d: Diagnostic) -> Optional[str]:
    return _OUTLINE_NONE_RE.sub(r"\g<1>2px solid currentColor", line)


@ValidatorRegistry.register
class CSSValidator(ScriptDialectValidator):
    name = "css_validator"
    dialect = Dialect.CSS
    fixers = {
        "css-missing-semicolon": _fix_missing_semicolon,
        "css-focus-outline": _fix_focus_outline,
    }

    def _source(self, code: str) -> MaskedSource:
        return mask_source(code, Dialect.CSS)

    def _at(self, text: str, offset: int, rule: str, message: str, category: DiagnosticCategory,
            severity: Severity, fix: Optional[str] = None) -> Diagnostic:
        line, col = offset_to_position(text, offset)
        return diag(line, col, rule, message, category, severity, fix)

    # ------------------------------------------------------------------ syntax

    def validate_syntax(self, code: str) -> List[Diagnostic]:
        source = self._source(code)
        text = source.text
        found: List[Diagnostic] = []
        for issue in unbalanced_delimiters(source.lines, "{}"):
            found.append(diag(
                issue.line, issue.column, "css-brace-matching",
                "Unclosed '{'" if issue.kind == "unclosed" else "Unexpected '}'",
                DiagnosticCategory.SYNTAX, Severity.ERROR, "Balance the braces",
            ))
        rules = self.guarded("rule parsing", lambda: parse_rules(text))
        found.extend(self.guarded("declarations", lambda: self._check_declarations(text, rules)))
        found.extend(self.guarded("values", lambda: self._check_values(text, rules)))
        return found

    def _check_declarations(self, text: str, rules: List[Rule]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for rule in rules:
            for offset in rule.missing_semicolons:
                found.append(self._at(
                    text, offset, "css-missing-semicolon", "Declaration is not terminated with ';'",
                    DiagnosticCategory.SYNTAX, Severity.ERROR, "Add ';' at the end of the declaration",
                ))
            for offset, segment in rule.invalid:
                found.append(self._at(
                    text, offset, "css-invalid-declaration", f"'{segment}' is not a 'property: value' declaration",
                    DiagnosticCategory.SYNTAX, Severity.ERROR, "Write declarations as property: value;",
                ))
        return found

    def _check_values(self, text: str, rules: List[Rule]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for rule in rules:
            for decl in rule.declarations:
                value = _URL_RE.sub(lambda m: " " * len(m.group(0)), decl.value)
                for m in _HEX_RE.finditer(value):
                    digits = m.group(1)
                    if len(digits) not in (3, 4, 6, 8) or not re.fullmatch(r"[0-9A-Fa-f]+", digits):
                        found.append(self._at(
                            text, decl.value_offset + m.start(), "css-invalid-color", f"Invalid color #{digits}",
                            DiagnosticCategory.SYNTAX, Severity.ERROR, "Use 3, 4, 6 or 8 hexadecimal digits",
                        ))
                value = _HEX_RE.sub(lambda m: " " * len(m.group(0)), value)
                for m in _DIMENSION_RE.finditer(value):
                    unit = m.group(2)
                    if unit.lower() not in VALID_UNITS:
                        found.append(self._at(
                            text, decl.value_offset + m.start(2), "css-unknown-unit", f"Unknown unit '{unit}'",
                            DiagnosticCategory.SYNTAX, Severity.ERROR, "Use a CSS unit such as px, em or %",
                        ))
        return found

    # --------------------------------------------------------------- semantics

    def validate_semantics(self, code: str) -> List[Diagnostic]:
        source = self._source(code)
        text = source.text
        rules = self.guarded("rule parsing", lambda: parse_rules(text))
        found: List[Diagnostic] = []
        found.extend(self.guarded("properties", lambda: self._check_properties(text, rules)))
        found.extend(self.guarded("important", lambda: self._check_important(source)))
        found.extend(self.guarded("specificity", lambda: self._check_specificity(text, rules)))
        found.extend(self.guarded("focus outline", lambda: self._check_focus_outline(text, rules)))
        return found

    def _check_properties(self, text: str, rules: List[Rule]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for rule in rules:
            if rule.is_at_rule and not rule.selector.lower().startswith("@font-face"):
                continue
            for decl in rule.declarations:
                if _is_custom_or_vendor(decl.prop) or decl.prop in KNOWN_PROPERTIES:
                    continue
                found.append(self._at(
                    text, decl.offset, "css-unknown-property", f"Unknown property '{decl.prop}'",
                    DiagnosticCategory.SEMANTIC, Severity.WARNING, "Check the property name for typos",
                ))
        return found

    def _check_important(self, source: MaskedSource) -> List[Diagnostic]:
        # Line based so it still reports inside unbalanced blocks
        found: List[Diagnostic] = []
        for line in source.lines:
            for m in re.finditer(r"!important\b", line.masked, re.IGNORECASE):
                found.append(diag(
                    line.number, m.start(), "css-important", "!important overrides the cascade",
                    DiagnosticCategory.STYLE, Severity.INFO,
                ))
        return found

    def _check_specificity(self, text: str, rules: List[Rule]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for rule in rules:
            if rule.is_at_rule:
                continue
            offset = rule.offset
            for selector in rule.selector.split(","):
                ids = len(re.findall(r"#[-\w]+", selector))
                classes = len(re.findall(r"\.[-\w]+|\[[^\]]*\]|(?<!:):(?!:)[-\w]+", selector))
                if ids > MAX_SELECTOR_IDS or classes > MAX_SELECTOR_CLASSES:
                    found.append(self._at(
                        text, offset + (len(selector) - len(selector.lstrip())), "css-high-specificity",
                        f"Selector '{selector.strip()}' is too specific ({ids} ids, {classes} classes)",
                        DiagnosticCategory.STYLE, Severity.WARNING, "Reduce ids and chained classes in the selector",
                    ))
                offset += len(selector) + 1
        return found

    def _check_focus_outline(self, text: str, rules: List[Rule]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for rule in rules:
            if not _FOCUS_RE.search(rule.selector):
                continue
            decl = rule.get("outline")
            if decl and re.fullmatch(r"(?:none|0)(?:\s*!important)?", decl.value, re.IGNORECASE):
                found.append(self._at(
                    text, decl.offset, "css-focus-outline", "Focus outline removed; keyboard users lose track of focus",
                    DiagnosticCategory.SEMANTIC, Severity.WARNING, "Keep a visible outline such as 2px solid currentColor",
                ))
        return found

    # ------------------------------------------------------------- performance

    def analyze_performance(self, code: str) -> List[Diagnostic]:
        text = self._source(code).text
        rules = self.guarded("rule parsing", lambda: parse_rules(text))
        found: List[Diagnostic] = []
        for rule in rules:
            if not rule.is_at_rule and _UNIVERSAL_RE.search(rule.selector):
                found.append(self._at(
                    text, rule.offset, "css-universal-selector", "Universal selector matches every element",
                    DiagnosticCategory.PERFORMANCE, Severity.WARNING, "Target specific elements or classes",
                ))
            for decl in rule.declarations:
                if decl.prop in EXPENSIVE_PROPERTIES:
                    found.append(self._at(
                        text, decl.offset, "css-expensive-property", f"{decl.prop} is expensive to render",
                        DiagnosticCategory.PERFORMANCE, Severity.INFO, "Use it sparingly, especially on animated elements",
                    ))
                if decl.prop in ("transition", "transition-property") and _LAYOUT_PROPERTY_RE.search(decl.value):
                    found.append(self._at(
                        text, decl.offset, "css-animate-layout", "Transition animates a layout property",
                        DiagnosticCategory.PERFORMANCE, Severity.WARNING,
                        "Animate transform and opacity instead of size or position",
                    ))
        return found

    # ------------------------------------------------------------ suggestions

    def get_optimization_suggestions(self, code: str) -> List[Suggestion]:
        text = self._source(code).text
        rules = self.guarded("rule parsing", lambda: parse_rules(text))
        suggestions: List[Suggestion] = []
        for rule in rules:
            line, _col = offset_to_position(text, rule.offset)
            floated = rule.get("float")
            if floated and floated.value.lower() in ("left", "right"):
                suggestions.append(Suggestion(
                    id=f"css-modern-layout:{line}",
                    kind=SuggestionKind.BEST_PRACTICE,
                    title="Use modern layout",
                    message="On CloudPages, flexbox or grid is easier to maintain than floats; keep floats for email",
                    impact=Impact.LOW,
                    line=line,
                ))
            if _FOCUS_RE.search(rule.selector):
                suggestions.append(Suggestion(
                    id=f"css-focus-visible:{line}",
                    kind=SuggestionKind.BEST_PRACTICE,
                    title="Use :focus-visible",
                    message="Use :focus-visible to show focus styles to keyboard users only",
                    impact=Impact.LOW,
                    line=line,
                ))
            animated = rule.get("animation") or rule.get("animation-name")
            if animated and not rule.get("will-change"):
                suggestions.append(Suggestion(
                    id=f"css-will-change:{line}",
                    kind=SuggestionKind.PERFORMANCE,
                    title="Hint animated properties",
                    message="Add will-change for the animated properties so the browser can prepare a layer",
                    impact=Impact.LOW,
                    line=line,
                ))

        colors = Counter(
            m.group(0).lower()
            for rule in rules for decl in rule.declarations
            for m in _HEX_RE.finditer(decl.value)
        )
        for color, count in sorted(colors.items()):
            if count >= 3:
                suggestions.append(Suggestion(
                    id=f"css-custom-property:{color}",
                    kind=SuggestionKind.MAINTAINABILITY,
                    title="Use CSS custom properties",
                    message=f"{color} is repeated {count} times; define it once as a custom property (CloudPages only)",
                    impact=Impact.LOW,
                ))
        return suggestions
