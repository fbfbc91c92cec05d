"""
Asynchronous pattern rewriting of document text

Every match is resolved concurrently, then the text is rebuilt by splicing
replacements back in match order. Completion order of the resolvers never
affects the output, and text outside the matched spans is copied verbatim.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Pattern, Tuple, Union

logger = logging.getLogger(__name__)

EXTERNAL_MEDIA_LINK_PATTERN = re.compile(r"!\[(?P<anchor>.*?)\]\((?P<link>.+?)\)")

# resolver(match_text, *groups) -> replacement text
Resolver = Callable[..., Awaitable[str]]


@dataclass(frozen=True)
class ReferenceMatch:
    """One match found in a document, with its span and captured groups"""
    text: str
    span: Tuple[int, int]
    groups: Tuple[Optional[str], ...] = ()
    named: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def anchor(self) -> Optional[str]:
        return self.named.get("anchor")

    @property
    def link(self) -> Optional[str]:
        return self.named.get("link")


@dataclass(frozen=True)
class RewriteResult:
    original: str
    text: str

    @property
    def changed(self) -> bool:
        return self.text != self.original


def find_references(
    text: str,
    pattern: Union[str, Pattern] = EXTERNAL_MEDIA_LINK_PATTERN,
) -> List[ReferenceMatch]:
    """Collect every non-overlapping match left to right"""
    if isinstance(pattern, str):
        pattern = re.compile(pattern)
    return [
        ReferenceMatch(
            text=m.group(0),
            span=m.span(),
            groups=m.groups(),
            named=m.groupdict(),
        )
        for m in pattern.finditer(text)
    ]


async def _resolve_one(resolver: Resolver, reference: ReferenceMatch) -> str:
    return await resolver(reference.text, *reference.groups)


async def replace_async(
    text: str,
    pattern: Union[str, Pattern],
    resolver: Resolver,
) -> RewriteResult:
    """
    Replace every match of pattern in text with the resolver's result.

    A resolver that raises keeps the original match text; the error is
    logged and the other matches are unaffected.
    """
    references = find_references(text, pattern)
    if not references:
        return RewriteResult(original=text, text=text)

    replacements = await asyncio.gather(
        *(_resolve_one(resolver, reference) for reference in references),
        return_exceptions=True,
    )

    parts = []
    position = 0
    for reference, replacement in zip(references, replacements):
        start, end = reference.span
        parts.append(text[position:start])
        if isinstance(replacement, BaseException):
            if not isinstance(replacement, Exception):
                raise replacement
            logger.warning(f"Replacement failed for {reference.text!r}: {replacement}")
            parts.append(reference.text)
        else:
            parts.append(replacement)
        position = end
    parts.append(text[position:])

    return RewriteResult(original=text, text="".join(parts))
