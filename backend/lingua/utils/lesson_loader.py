"""Read lesson catalogue files.

A catalogue file is a JSON list of lesson groups::

    [{"type": "grammar", "mode": "easy",
      "lesson_data": [{"level": 1, "...": "..."}, {"level": 2}]}]

Each entry of `lesson_data` becomes one lesson; its `level` key is lifted
out and the remaining keys are the lesson content.
"""

import json
from pathlib import Path
from typing import List, Union

from ..errors import InvalidArgumentError
from ..models import LESSON_MODES


def parse_lesson_groups(raw: Union[str, bytes]) -> List[dict]:
    """Flatten catalogue JSON into `{type, mode, level, lesson_data}` dicts."""
    try:
        groups = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidArgumentError("lesson file is not valid JSON", {"error": str(exc)}) from exc
    if not isinstance(groups, list):
        raise InvalidArgumentError("lesson file must contain a list of lesson groups")
    lessons = []
    for gidx, group in enumerate(groups):
        if not isinstance(group, dict) or not group.get('type'):
            raise InvalidArgumentError("lesson group missing type", {"group": gidx})
        mode = group.get('mode')
        if mode not in LESSON_MODES:
            raise InvalidArgumentError("invalid lesson mode", {"group": gidx, "mode": mode})
        for item in group.get('lesson_data') or []:
            if not isinstance(item, dict):
                raise InvalidArgumentError("lesson entry must be an object", {"group": gidx})
            content = dict(item)
            level = content.pop('level', None)
            # bool is an int subclass; reject it explicitly
            if isinstance(level, bool) or not isinstance(level, (int, float)) or level <= 0:
                raise InvalidArgumentError("invalid lesson level", {"type": group['type'], "level": level})
            if isinstance(level, float) and not level.is_integer():
                raise InvalidArgumentError("invalid lesson level", {"type": group['type'], "level": level})
            lessons.append({
                'type': group['type'],
                'mode': mode,
                'level': int(level),
                'english_level': group.get('english_level'),
                'xp': int(group.get('xp') or 0),
                'lesson_data': content,
            })
    return lessons


def read_lesson_file(path: Union[str, Path]) -> List[dict]:
    """Read and flatten a catalogue file from disk."""
    p = Path(path)
    if not p.is_file():
        raise InvalidArgumentError("lesson file not found", {"path": str(p)})
    return parse_lesson_groups(p.read_text(encoding="utf-8"))
