"""
HTML validator for email bodies and CloudPages markup.

Embedded AMPscript (`%%[ ]%%`, `%%= =%%`) and comments are blanked before
scanning, keeping offsets, so template logic inside markup never reads as tags.
Document-level checks (doctype, head/body, title) only apply when the text is a
full document, i.e. it has an `<html>` element; fragments are checked tag by tag.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ...models.linting import Diagnostic, DiagnosticCategory, Dialect, Impact, Severity, Suggestion, SuggestionKind
from . import ScriptDialectValidator, ValidatorRegistry, diag
from .text_scan import offset_to_position

logger = logging.getLogger(__name__)


VOID_ELEMENTS = frozenset(
    "area base br col embed hr img input link meta param source track wbr".split()
)
# Elements whose end tag may be omitted
OPTIONAL_CLOSE = frozenset("p li td th tr thead tbody tfoot option dt dd colgroup".split())
# Block-level elements that may not appear inside <p>
BLOCK_ELEMENTS = frozenset(
    "address article aside blockquote div dl fieldset figure footer form h1 h2 h3 h4 h5 h6 "
    "header hr main nav ol pre section table ul".split()
)
DEPRECATED_ELEMENTS = {
    "marquee": Severity.WARNING,
    "blink": Severity.WARNING,
    "big": Severity.WARNING,
    "tt": Severity.WARNING,
    "strike": Severity.WARNING,
    # Still needed by some desktop email clients
    "center": Severity.INFO,
    "font": Severity.INFO,
}
UNLABELLED_INPUT_TYPES = frozenset({"hidden", "submit", "button", "image", "reset"})
LANDMARK_NAMES = ("header", "nav", "main", "footer")

_TAG_RE = re.compile(r"<(/?)([A-Za-z][\w:-]*)([^<>]*?)(/?)>", re.DOTALL)
_ATTR_RE = re.compile(r"([^\s=/>\"']+)(?:\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s\"'>]+))?")
_INLINE_HANDLER_RE = re.compile(r"on[a-z]+", re.IGNORECASE)
_RAW_TEXT = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_SCRIPT_ELEMENT_RE = re.compile(r"<script\b([^>]*)>(.*?)</script\s*>", re.IGNORECASE | re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
# AMPscript/SSJS embedded in markup is not HTML
_EMBEDDED_SCRIPT = re.compile(r"%%\[.*?\]%%|%%=.*?=%%", re.DOTALL)
# Fixers rewrite every occurrence on the line; only one runs per rule and line
_IMG_WITHOUT_ALT = re.compile(r"(<img\b(?![^>]*\balt\s*=)[^>]*?)\s*(/?)>", re.IGNORECASE)
_VOID_END_TAG = re.compile(r"</(?:%s)\s*>" % "|".join(sorted(VOID_ELEMENTS)), re.IGNORECASE)
_LINE_TAG = re.compile(r"<[A-Za-z][^<>]*>")


def _blank(text: str, pattern: re.Pattern) -> str:
    """Replace matches with spaces, keeping newlines so positions survive."""
    return pattern.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), text)


class Tag:
    """One start or end tag found in the blanked markup."""

    def __init__(self, match: re.Match):
        self.match = match
        self.closing = bool(match.group(1))
        self.name = match.group(2).lower()
        self.self_closing = bool(match.group(4))
        self.start = match.start()

    def attributes(self) -> Iterator[Tuple[str, Optional[str], int]]:
        """(lower-cased name, raw value or None, offset of the name) per attribute."""
        base = self.match.start(3)
        for m in _ATTR_RE.finditer(self.match.group(3)):
            yield m.group(1).lower(), m.group(2), base + m.start(1)

    def attribute_map(self) -> Dict[str, Optional[str]]:
        found: Dict[str, Optional[str]] = {}
        for name, value, _offset in self.attributes():
            found.setdefault(name, value)
        return found


def _unquote(value: Optional[str]) -> str:
    return (value or "").strip("\"'").strip()


def _fix_img_alt(line: str, d: Diagnostic) -> Optional[str]:
    return _IMG_WITHOUT_ALT.sub(lambda m: f'{m.group(1)} alt=""{" /" if m.group(2) else ""}>', line)


def _quote_values(tag: re.Match) -> str:
    def quote(attr: re.Match) -> str:
        value = attr.group(2)
        if value is None or value[0] in "\"'":
            return attr.group(0)
        head = attr.group(0)[: attr.start(2) - attr.start()]
        return f'{head}"{value}"'

    return _ATTR_RE.sub(quote, tag.group(0))


def _fix_unquoted_attribute(line: str, d: Diagnostic) -> Optional[str]:
    return _LINE_TAG.sub(_quote_values, line)


def _fix_void_end_tag(line: str, d: Diagnostic) -> Optional[str]:
    return _VOID_END_TAG.sub("", line)


def _fix_doctype(line: str, d: Diagnostic) -> Optional[str]:
    return "<!DOCTYPE html>\n" + line


@ValidatorRegistry.register
class HTMLValidator(ScriptDialectValidator):
    """Markup structure, accessibility, SEO and loading checks."""

    name = "html_validator"
    dialect = Dialect.HTML
    fixers = {
        "html-img-alt": _fix_img_alt,
        "html-quoted-attributes": _fix_unquoted_attribute,
        "html-self-closing-tag": _fix_void_end_tag,
        "html-doctype": _fix_doctype,
    }

    # Two views of the same text: `markup` keeps <script>/<style> elements,
    # `tags` blanks them too. Both keep every offset of `code`.
    def _markup(self, code: str) -> str:
        return _blank(_blank(code, _EMBEDDED_SCRIPT), _COMMENT_RE)

    def _tags(self, code: str) -> Tuple[str, List[Tag]]:
        text = _blank(self._markup(code), _RAW_TEXT)
        return text, [Tag(m) for m in _TAG_RE.finditer(text)]

    @staticmethod
    def _is_document(tags: List[Tag]) -> bool:
        return any(t.name == "html" and not t.closing for t in tags)

    def _at(self, text: str, offset: int, rule: str, message: str, category: DiagnosticCategory,
            severity: Severity, fix: Optional[str] = None) -> Diagnostic:
        line, col = offset_to_position(text, offset)
        return diag(line, col, rule, message, category, severity, fix)

    # ------------------------------------------------------------------ syntax

    def validate_syntax(self, code: str) -> List[Diagnostic]:
        text, tags = self._tags(code)
        found: List[Diagnostic] = []
        found.extend(self.guarded("tag structure", lambda: self._check_structure(text, tags)))
        found.extend(self.guarded("attribute syntax", lambda: self._check_attribute_syntax(text, tags)))
        found.extend(self.guarded("document structure", lambda: self._check_document(code, text, tags)))
        return found

    def _check_structure(self, text: str, tags: List[Tag]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        stack: List[Tuple[str, int]] = []
        for tag in tags:
            name = tag.name
            if tag.closing and name in VOID_ELEMENTS:
                found.append(self._at(
                    text, tag.start, "html-self-closing-tag", f"<{name}> is a void element and takes no </{name}>",
                    DiagnosticCategory.SYNTAX, Severity.WARNING, f"Remove </{name}>",
                ))
                continue
            if name in VOID_ELEMENTS or tag.self_closing:
                continue
            if not tag.closing:
                if stack and stack[-1][0] == "p":
                    if name == "p":
                        stack.pop()
                    elif name in BLOCK_ELEMENTS:
                        found.append(self._at(
                            text, tag.start, "html-invalid-nesting", f"<{name}> cannot be nested inside <p>",
                            DiagnosticCategory.SYNTAX, Severity.ERROR, "Close the paragraph first or use a <div>",
                        ))
                stack.append((name, tag.start))
                continue
            if not any(open_name == name for open_name, _ in stack):
                found.append(self._at(
                    text, tag.start, "html-tag-mismatch", f"Closing tag </{name}> has no matching opening tag",
                    DiagnosticCategory.SYNTAX, Severity.ERROR, f"Remove </{name}> or add the opening tag",
                ))
                continue
            while stack:
                open_name, offset = stack.pop()
                if open_name == name:
                    break
                if open_name not in OPTIONAL_CLOSE:
                    found.append(self._at(
                        text, offset, "html-tag-mismatch", f"<{open_name}> is closed by </{name}>",
                        DiagnosticCategory.SYNTAX, Severity.ERROR, f"Close <{open_name}> before </{name}>",
                    ))
        for open_name, offset in stack:
            if open_name in OPTIONAL_CLOSE or open_name in ("html", "body", "head"):
                continue
            found.append(self._at(
                text, offset, "html-tag-mismatch", f"<{open_name}> is never closed",
                DiagnosticCategory.SYNTAX, Severity.ERROR, f"Add </{open_name}>",
            ))
        return found

    def _check_attribute_syntax(self, text: str, tags: List[Tag]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for tag in tags:
            if tag.closing:
                continue
            seen: Set[str] = set()
            for name, value, offset in tag.attributes():
                if name in seen:
                    found.append(self._at(
                        text, offset, "html-duplicate-attribute", f"Duplicate attribute {name} on <{tag.name}>",
                        DiagnosticCategory.SYNTAX, Severity.ERROR, f"Remove the second {name}",
                    ))
                seen.add(name)
                if value is not None and value[0] not in "\"'":
                    found.append(self._at(
                        text, offset, "html-quoted-attributes", f"Value of {name} is not quoted",
                        DiagnosticCategory.SYNTAX, Severity.WARNING, "Wrap the attribute value in quotes",
                    ))
        return found

    def _check_document(self, code: str, text: str, tags: List[Tag]) -> List[Diagnostic]:
        if not self._is_document(tags):
            return []
        found: List[Diagnostic] = []
        first = next((i for i, line in enumerate(code.split("\n"), start=1) if line.strip()), 1)
        if not code.lstrip().lower().startswith("<!doctype"):
            found.append(diag(
                first, 0, "html-doctype", "Document does not start with a DOCTYPE declaration",
                DiagnosticCategory.SYNTAX, Severity.WARNING, "Add <!DOCTYPE html> as the first line",
            ))
        names = {t.name for t in tags if not t.closing}
        for required in ("head", "body"):
            if required not in names:
                found.append(diag(
                    first, 0, "html-required-structure", f"Document has no <{required}> element",
                    DiagnosticCategory.SYNTAX, Severity.WARNING, f"Add a <{required}> element",
                ))
        return found

    # --------------------------------------------------------------- semantics

    def validate_semantics(self, code: str) -> List[Diagnostic]:
        text, tags = self._tags(code)
        found: List[Diagnostic] = []
        found.extend(self.guarded("accessibility", lambda: self._check_accessibility(text, tags)))
        found.extend(self.guarded("required attributes", lambda: self._check_required_attributes(text, tags)))
        found.extend(self.guarded("SEO", lambda: self._check_seo(text, tags)))
        found.extend(self.guarded("deprecated elements", lambda: self._check_deprecated(text, tags)))
        found.extend(self.guarded("inline handlers", lambda: self._check_inline_handlers(text, tags)))
        return found

    def _check_accessibility(self, text: str, tags: List[Tag]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        label_targets = {
            _unquote(t.attribute_map().get("for")) for t in tags if t.name == "label" and not t.closing
        }
        label_depth = 0
        for tag in tags:
            if tag.name == "label" and not tag.self_closing:
                label_depth += -1 if tag.closing else 1
                label_depth = max(0, label_depth)
                continue
            if tag.closing:
                continue
            attrs = tag.attribute_map()
            if tag.name == "img" and "alt" not in attrs:
                found.append(self._at(
                    text, tag.start, "html-img-alt", "Image without alt text",
                    DiagnosticCategory.STYLE, Severity.WARNING, 'Add alt="" (or a description) to the image',
                ))
            if tag.name in ("input", "select", "textarea"):
                if _unquote(attrs.get("type")).lower() in UNLABELLED_INPUT_TYPES:
                    continue
                labelled = (
                    label_depth > 0
                    or any(a in attrs for a in ("aria-label", "aria-labelledby", "title"))
                    or (_unquote(attrs.get("id")) and _unquote(attrs.get("id")) in label_targets)
                )
                if not labelled:
                    found.append(self._at(
                        text, tag.start, "html-accessibility-label", f"<{tag.name}> has no associated label",
                        DiagnosticCategory.STYLE, Severity.WARNING,
                        "Add a <label for=...> or an aria-label attribute",
                    ))
        return found

    def _check_required_attributes(self, text: str, tags: List[Tag]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for tag in tags:
            if tag.closing:
                continue
            attrs = tag.attribute_map()
            missing = None
            if tag.name == "img" and "src" not in attrs:
                missing = "src"
            elif tag.name == "a" and not any(a in attrs for a in ("href", "name", "id")):
                missing = "href"
            elif tag.name == "meta" and "content" not in attrs and any(
                a in attrs for a in ("name", "property", "http-equiv")
            ):
                missing = "content"
            if missing:
                found.append(self._at(
                    text, tag.start, "html-required-attributes", f"<{tag.name}> is missing the {missing} attribute",
                    DiagnosticCategory.SEMANTIC, Severity.WARNING, f"Add {missing} to the <{tag.name}> element",
                ))
        return found

    def _check_seo(self, text: str, tags: List[Tag]) -> List[Diagnostic]:
        head = next((t for t in tags if t.name == "head" and not t.closing), None)
        if head is None:
            return []
        found: List[Diagnostic] = []
        if not any(t.name == "title" and not t.closing for t in tags):
            found.append(self._at(
                text, head.start, "html-seo-title", "Page has no <title>",
                DiagnosticCategory.SEMANTIC, Severity.WARNING, "Add a <title> inside <head>",
            ))
        has_description = any(
            t.name == "meta" and _unquote(t.attribute_map().get("name")).lower() == "description"
            for t in tags if not t.closing
        )
        if not has_description:
            found.append(self._at(
                text, head.start, "html-seo-meta-description", "Page has no meta description",
                DiagnosticCategory.SEMANTIC, Severity.INFO, 'Add <meta name="description" content="..."> to <head>',
            ))
        return found

    def _check_deprecated(self, text: str, tags: List[Tag]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for tag in tags:
            severity = DEPRECATED_ELEMENTS.get(tag.name)
            if severity is None or tag.closing:
                continue
            found.append(self._at(
                text, tag.start, "html-deprecated-elements", f"<{tag.name}> is deprecated",
                DiagnosticCategory.SEMANTIC, severity, f"Replace <{tag.name}> with CSS styling",
            ))
        return found

    def _check_inline_handlers(self, text: str, tags: List[Tag]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for tag in tags:
            if tag.closing:
                continue
            for name, _value, offset in tag.attributes():
                if _INLINE_HANDLER_RE.fullmatch(name):
                    found.append(self._at(
                        text, offset, "html-inline-handler", f"Inline event handler {name}",
                        DiagnosticCategory.STYLE, Severity.INFO, "Most email clients strip inline script handlers",
                    ))
        return found

    # ------------------------------------------------------------- performance

    def analyze_performance(self, code: str) -> List[Diagnostic]:
        markup = self._markup(code)
        text, tags = self._tags(code)
        found: List[Diagnostic] = []
        found.extend(self.guarded("script placement", lambda: self._check_scripts(markup)))
        found.extend(self.guarded("image loading", lambda: self._check_images(text, tags)))
        return found

    def _check_scripts(self, markup: str) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        head_open = re.search(r"<head\b", markup, re.IGNORECASE)
        head_close = re.search(r"</head\s*>", markup, re.IGNORECASE)
        for m in _SCRIPT_ELEMENT_RE.finditer(markup):
            attrs = m.group(1).lower()
            if re.search(r"runat\s*=\s*[\"']?server", attrs) or "ld+json" in attrs:
                continue
            in_head = bool(head_open) and m.start() > head_open.start() and (
                head_close is None or m.start() < head_close.start()
            )
            has_src = re.search(r"\bsrc\s*=", attrs) is not None
            if has_src and in_head and not re.search(r"\b(?:async|defer)\b", attrs):
                found.append(self._at(
                    markup, m.start(), "html-script-placement", "Script in <head> blocks rendering",
                    DiagnosticCategory.PERFORMANCE, Severity.WARNING,
                    "Add async or defer, or move the script to the end of <body>",
                ))
            elif not has_src and m.group(2).strip():
                found.append(self._at(
                    markup, m.start(), "html-inline-scripts", "Inline client-side script",
                    DiagnosticCategory.PERFORMANCE, Severity.INFO, "Move the script to an external file so it can be cached",
                ))
        return found

    def _check_images(self, text: str, tags: List[Tag]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        for tag in tags:
            if tag.name == "img" and not tag.closing and "loading" not in tag.attribute_map():
                found.append(self._at(
                    text, tag.start, "html-lazy-loading", 'Image has no loading attribute',
                    DiagnosticCategory.PERFORMANCE, Severity.INFO, 'Add loading="lazy" to images below the fold',
                ))
        return found

    # ------------------------------------------------------------ suggestions

    def get_optimization_suggestions(self, code: str) -> List[Suggestion]:
        text, tags = self._tags(code)
        markup = self._markup(code)
        suggestions: List[Suggestion] = []
        for tag in (t for t in tags if not t.closing):
            attrs = tag.attribute_map()
            line, _col = offset_to_position(text, tag.start)
            if tag.name == "div":
                names = f"{_unquote(attrs.get('id'))} {_unquote(attrs.get('class'))}".lower().split()
                landmark = next((n for n in LANDMARK_NAMES if n in names), None)
                if landmark:
                    suggestions.append(Suggestion(
                        id=f"html-semantic-element:{line}",
                        kind=SuggestionKind.BEST_PRACTICE,
                        title="Use semantic HTML elements",
                        message=f"Use <{landmark}> instead of <div> for this landmark",
                        impact=Impact.MEDIUM,
                        line=line,
                    ))
            elif tag.name == "img" and re.search(r"\.(?:jpe?g|png)\b", _unquote(attrs.get("src")), re.IGNORECASE):
                suggestions.append(Suggestion(
                    id=f"html-modern-image:{line}",
                    kind=SuggestionKind.PERFORMANCE,
                    title="Consider modern image formats",
                    message="On CloudPages, serve WebP or AVIF through <picture> and keep this image as the fallback",
                    impact=Impact.LOW,
                    line=line,
                ))
        for m in re.finditer(r"<link\b[^>]*\bstylesheet\b[^>]*>", markup, re.IGNORECASE):
            line, _col = offset_to_position(markup, m.start())
            suggestions.append(Suggestion(
                id=f"html-preload-css:{line}",
                kind=SuggestionKind.PERFORMANCE,
                title="Preload critical CSS",
                message='Preload the stylesheet with rel="preload" as="style" to speed up first render',
                impact=Impact.MEDIUM,
                line=line,
            ))
        return suggestions
