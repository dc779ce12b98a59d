"""Resolution of ``@{step:...}`` and ``@{ref:...}`` mentions in prompt templates."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ..errors import UNRESOLVED_REFERENCE, InvalidConfigError
from ..types import MediaReference, SessionResponse

logger = logging.getLogger(__name__)

_MENTION_PATTERN = re.compile(r"@\{(step|ref):([^}]+)\}")
VALUE_DELIMITER = ", "


def media_label(ref: MediaReference) -> str:
    """Stable label used both in prompt text and alongside attached media."""
    return f"<ref_{ref.display_name or ref.media_asset_id}>"


@dataclass(slots=True)
class ResolvedPrompt:
    """Final generation text plus the media to attach, in attachment order."""

    text: str
    media_refs: List[MediaReference] = field(default_factory=list)


def resolve_prompt_mentions(
    template: str,
    responses: Sequence[SessionResponse],
    ref_media: Sequence[MediaReference],
) -> ResolvedPrompt:
    """Return the resolved prompt for ``template``.

    Step mentions substitute the answer of the referenced step; a step that is
    absent (e.g. a skipped optional step) resolves to an empty string. Reference
    mentions substitute the media label and collect the reference; a reference
    that is not part of ``ref_media`` is a configuration error.
    """
    media_refs: List[MediaReference] = []
    seen_ids: set[str] = set()

    def _collect(ref: MediaReference) -> None:
        if ref.media_asset_id not in seen_ids:
            seen_ids.add(ref.media_asset_id)
            media_refs.append(ref)

    def _replace(match: re.Match[str]) -> str:
        kind, key = match.group(1), match.group(2).strip()
        if kind == "step":
            response = _find_response(responses, key)
            if response is None:
                logger.warning("Step mention %r has no response; substituting empty text.", key)
                return ""
            return _render_response(response, _collect)

        ref = _find_reference(ref_media, key)
        if ref is None:
            raise InvalidConfigError(
                f"Prompt references unknown media '{key}'",
                reason=UNRESOLVED_REFERENCE,
                context={"mention": match.group(0)},
            )
        _collect(ref)
        return media_label(ref)

    text = _MENTION_PATTERN.sub(_replace, template or "")
    return ResolvedPrompt(text=text, media_refs=media_refs)


def _find_response(responses: Iterable[SessionResponse], key: str) -> Optional[SessionResponse]:
    candidates = list(responses)
    for response in candidates:
        if response.step_name and response.step_name == key:
            return response
    for response in candidates:
        if response.step_id == key:
            return response
    return None


def _find_reference(refs: Iterable[MediaReference], key: str) -> Optional[MediaReference]:
    candidates = list(refs)
    for ref in candidates:
        if ref.media_asset_id == key:
            return ref
    for ref in candidates:
        if ref.display_name == key:
            return ref
    return None


def _render_response(response: SessionResponse, collect) -> str:
    data = response.data
    if data is None:
        return ""
    if isinstance(data, str):
        return data

    if not isinstance(data, tuple):
        logger.warning(
            "Step %r answer has unsupported shape %s; substituting empty text.",
            response.step_id,
            type(data).__name__,
        )
        return ""

    media = response.media
    if media:
        for ref in media:
            collect(ref)
        return " ".join(media_label(ref) for ref in media)

    values: List[str] = []
    for item in data:
        if isinstance(item, Mapping):
            value: Any = item.get("value")
        else:
            value = item
        if value is not None and str(value) != "":
            values.append(str(value))
    return VALUE_DELIMITER.join(values)


__all__ = ["ResolvedPrompt", "resolve_prompt_mentions", "media_label", "VALUE_DELIMITER"]
