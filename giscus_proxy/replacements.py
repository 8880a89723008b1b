"""Parsing and application of widget text replacement rules.

A rule arrives as a ``rep`` query parameter of the form ``LEFT=>RIGHT``. When
``LEFT`` starts with ``re:`` the remainder is a regular expression, otherwise
it is matched literally. The right side is always inserted literally.
"""

import re
from collections.abc import Iterable
from collections.abc import Sequence

from giscus_proxy.exceptions import ReplacementRuleError
from giscus_proxy.types import REGEX_RULE_PREFIX
from giscus_proxy.types import RULE_SEPARATOR
from giscus_proxy.types import ReplacementRule

# The "powered by" attribution the widget renders in its footer, as it shows
# up in escaped JSON, in HTML with an en dash and with a plain hyphen.
FOOTER_FRAGMENTS = (
    "– powered by \\u003ca\\u003egiscus\\u003c/a\\u003e",
    "– powered by <a>giscus</a>",
    "- powered by <a>giscus</a>",
)


def parse_replacement_rule(raw: str) -> ReplacementRule:
    """Parse a single ``rep`` value.

    Raises:
        ReplacementRuleError: If the separator is missing or the pattern
            does not compile
    """
    left, sep, right = raw.partition(RULE_SEPARATOR)
    if not sep:
        msg = f"bad rep value {raw!r} (use LEFT=>RIGHT)"
        raise ReplacementRuleError(msg)

    if not left.startswith(REGEX_RULE_PREFIX):
        return ReplacementRule(source=left, replacement=right)

    source = left[len(REGEX_RULE_PREFIX) :]
    try:
        pattern = re.compile(source)
    except re.error as exc:
        msg = f"regex compile failed for {source!r}: {exc}"
        raise ReplacementRuleError(msg) from exc
    return ReplacementRule(
        source=source, replacement=right, is_regex=True, pattern=pattern
    )


def parse_replacement_rules(values: Iterable[str]) -> list[ReplacementRule]:
    """Parse every ``rep`` value, failing on the first invalid one."""
    return [parse_replacement_rule(raw) for raw in values]


def apply_replacements(text: str, rules: Sequence[ReplacementRule]) -> str:
    """Apply rules in order, each one to the output of the previous."""
    for rule in rules:
        if rule.is_regex and rule.pattern is not None:
            replacement = rule.replacement
            text = rule.pattern.sub(lambda _match: replacement, text)
        else:
            text = text.replace(rule.source, rule.replacement)
    return text


def strip_footer(text: str) -> str:
    for fragment in FOOTER_FRAGMENTS:
        text = text.replace(fragment, "")
    return text


def transform_widget_body(body: bytes, rules: Sequence[ReplacementRule]) -> bytes:
    """Run the user rules and then the footer removal over a widget body."""
    text = body.decode("utf-8", errors="surrogateescape")
    text = strip_footer(apply_replacements(text, rules))
    return text.encode("utf-8", errors="surrogateescape")
