"""Split window titles into task and application labels."""

from __future__ import annotations

import re

from .models import TitleLabel

_DELIMITERS = re.compile(r"[-|]")
_TASK_JOINER = " - "


def classify_title(title: str) -> TitleLabel:
    """Derive a ``(task, application)`` label from a window title.

    Most applications format their titles as ``"Document - Application"``, so
    the last segment is taken as the application and everything before it as
    the task. Titles without a delimiter become an application with an empty
    task; an empty title yields two empty labels.
    """
    segments = [part.strip() for part in _DELIMITERS.split(title or "")]
    segments = [part for part in segments if part]
    if not segments:
        return TitleLabel(task="", application="")
    task = _TASK_JOINER.join(segments[:-1]).strip()
    return TitleLabel(task=task, application=segments[-1])
