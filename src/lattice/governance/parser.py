"""Parse human replies to structured Lattice comments.

A structured comment carries a sentinel marker identifying its type and the
intent it belongs to. A human answers by checking boxes in the numbered
checklist and/or writing free text. This module recovers both:

- extract_sentinel: the comment type and attributes
- parse_response: checked item numbers and the free text, with the
  template boilerplate removed
- parse_comment: both at once, for routing a reply to its intent

Decoding is tolerant of the noise GitHub editing introduces: ``[X]`` as well
as ``[x]``, ``>`` quoting, extra blank lines and surrounding prose.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from lattice.errors import ErrorCode, LatticeError
from lattice.governance.comments import (
    APPROVE_PREFIX,
    DURATION_PREFIX,
    FOOTER_PREFIX,
    INTENT_PREFIX,
    REJECT_PREFIX,
    RESPOND_PREFIX,
    STEP_PREFIX,
)
from lattice.governance.models import ParsedComment, Response, Sentinel, SentinelType


logger = logging.getLogger(__name__)


SENTINEL_PATTERN = re.compile(r"<!--\s*lattice:(\w+)\s+(.*?)\s*-->")

ATTR_PATTERN = re.compile(r"^(\w+)=(\S+)$")

# Checked checklist line: "- [x] **3.** text", matched at the start of a line
CHECKED_PATTERN = re.compile(r"^-\s*\[x\]\s*\*\*(\d+)\.\*\*", re.IGNORECASE)

# Numbered plan steps: "1. [x] Run migrations `db`"
PLAN_STEP_PATTERN = re.compile(r"^\d+\.\s+\[.\]\s")

_QUOTE_PATTERN = re.compile(r"^(?:>\s*)+")

# Lines that belong to the comment templates rather than to the reply
BOILERPLATE_PREFIXES: Tuple[str, ...] = (
    "- [",
    "##",
    "<!--",
    INTENT_PREFIX,
    DURATION_PREFIX,
    STEP_PREFIX,
    RESPOND_PREFIX,
    APPROVE_PREFIX,
    REJECT_PREFIX,
    FOOTER_PREFIX,
)


class InvalidSentinelError(LatticeError):
    """Raised when a comment has no usable sentinel marker.

    Attributes:
        reason: What was wrong with the sentinel.
    """

    code = ErrorCode.INVALID_SENTINEL

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid sentinel: {reason}", details={"reason": reason})


class NotALatticeCommentError(LatticeError):
    """Raised when a comment was not produced by Lattice."""

    code = ErrorCode.NOT_A_LATTICE_COMMENT

    def __init__(self, reason: str = "no valid sentinel"):
        self.reason = reason
        super().__init__(f"Not a Lattice comment: {reason}", details={"reason": reason})


class NotAResponseError(LatticeError):
    """Raised when a comment contains neither checked items nor free text."""

    code = ErrorCode.NOT_A_RESPONSE

    def __init__(self):
        super().__init__("Comment contains no response")


def extract_sentinel(body: str) -> Sentinel:
    """Extract the sentinel marker from a comment body.

    Identical repeated sentinels are tolerated; two different ones make
    the comment ambiguous.

    Args:
        body: The comment body.

    Returns:
        The decoded Sentinel.

    Raises:
        InvalidSentinelError: If no sentinel is present, the type is not
            recognized, an attribute is malformed, ``intent_id`` is missing,
            or different sentinels are present.

    Example:
        >>> extract_sentinel("text <!-- lattice:question intent_id=int_abc --> footer")
        Sentinel(type=<SentinelType.QUESTION: 'question'>, attrs={'intent_id': 'int_abc'})
    """
    matches = SENTINEL_PATTERN.findall(body or "")
    if not matches:
        raise InvalidSentinelError("no sentinel found")

    sentinels = [_decode_sentinel(kind, attrs) for kind, attrs in matches]

    first = sentinels[0]
    if any(s != first for s in sentinels[1:]):
        raise InvalidSentinelError("multiple different sentinels")

    return first


def parse_response(body: str) -> Response:
    """Parse a human reply out of a comment body.

    Checked items are the numbers of lines starting with ``- [x] **N.**``
    (either case of ``x``, after any ``>`` quoting). The item text after
    the number is never read, so a checklist token quoted inside an item
    or in prose does not count as a check. The free text is everything left after removing blank
    lines, checklist lines, sentinels, headings and the template's
    instruction, intent and footer lines.

    Raises:
        NotAResponseError: If nothing is checked and no free text remains.

    Example:
        >>> parse_response("- [x] **1.** Deploy\\n- [ ] **2.** Skip\\n\\nAlso run tests")
        Response(checked=(1,), freeform='Also run tests')
    """
    checked = _extract_checked(body or "")
    freeform = _extract_freeform(body or "")

    if not checked and not freeform:
        raise NotAResponseError()

    return Response(checked=tuple(checked), freeform=freeform)


def parse_comment(body: str) -> ParsedComment:
    """Parse a full comment into its sentinel and response.

    Raises:
        NotALatticeCommentError: If the comment has no valid sentinel.
        NotAResponseError: If the comment carries no response.
    """
    try:
        sentinel = extract_sentinel(body)
    except InvalidSentinelError as e:
        raise NotALatticeCommentError(e.reason) from e

    response = parse_response(body)

    return ParsedComment(
        type=sentinel.type,
        intent_id=sentinel.intent_id,
        attrs=sentinel.attrs,
        response=response,
    )


def try_parse_comment(body: str) -> Optional[ParsedComment]:
    """Parse a comment, returning None when it is not actionable.

    For callers such as webhook handlers that see every comment on an
    issue and only care about replies to Lattice comments.
    """
    try:
        return parse_comment(body)
    except (NotALatticeCommentError, NotAResponseError) as e:
        logger.debug("Ignoring comment", extra={"error": e.code.value})
        return None


def _decode_sentinel(kind: str, attrs_str: str) -> Sentinel:
    try:
        sentinel_type = SentinelType(kind)
    except ValueError:
        raise InvalidSentinelError(f"unknown sentinel type: {kind}") from None

    attrs: Dict[str, str] = {}
    for token in attrs_str.split():
        match = ATTR_PATTERN.match(token)
        if not match:
            raise InvalidSentinelError(f"malformed attribute: {token}")
        key, value = match.groups()
        if key in attrs:
            raise InvalidSentinelError(f"duplicate attribute: {key}")
        attrs[key] = value

    if "intent_id" not in attrs:
        raise InvalidSentinelError("missing intent_id")

    return Sentinel(type=sentinel_type, attrs=attrs)


def _extract_checked(body: str) -> List[int]:
    numbers = set()
    for line in body.splitlines():
        match = CHECKED_PATTERN.match(_unquote(line))
        if match:
            numbers.add(int(match.group(1)))
    return sorted(n for n in numbers if n > 0)


def _extract_freeform(body: str) -> str:
    text = SENTINEL_PATTERN.sub("", body)

    kept = []
    for line in text.splitlines():
        trimmed = _unquote(line)
        if not trimmed:
            continue
        if trimmed.startswith(BOILERPLATE_PREFIXES):
            continue
        if PLAN_STEP_PATTERN.match(trimmed):
            continue
        kept.append(trimmed)

    return "\n".join(kept).strip()


def _unquote(line: str) -> str:
    return _QUOTE_PATTERN.sub("", line.strip()).strip()
