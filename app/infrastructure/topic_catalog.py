"""Read-only curriculum catalog used to label topic paths.

Loads the default curriculum JSON once and resolves ``strand/chapter/subtopic``
paths to human-readable names. A curriculum dict with the same shape can be
supplied instead (e.g. an instructor's imported curriculum).
"""
import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional


DATA_PATH = Path(__file__).resolve().parent / "data" / "default_curriculum.json"
PATH_SEPARATOR = " → "


@lru_cache(maxsize=1)
def load_default_curriculum() -> Dict[str, Any]:
    """Load the bundled curriculum once."""
    with open(DATA_PATH, encoding="utf-8") as f:
        return json.load(f)


class TopicCatalog:
    """Strand/chapter/subtopic lookup over one curriculum."""

    def __init__(self, curriculum: Optional[Dict[str, Any]] = None):
        self.curriculum = curriculum or load_default_curriculum()
        self._names: Dict[str, str] = {}
        self._options: List[Dict[str, str]] = []

        for strand in self.curriculum.get("strands", []):
            for chapter in strand.get("chapters", []):
                for subtopic in chapter.get("subtopics", []):
                    path = f"{strand['id']}/{chapter['id']}/{subtopic['id']}"
                    label = PATH_SEPARATOR.join(
                        [strand["name"], chapter["name"], subtopic["name"]]
                    )
                    self._names[path] = label
                    self._options.append({
                        "path": path,
                        "label": label,
                        "strand": strand["name"],
                        "chapter": chapter["name"],
                    })

    def get_topic_display_name(self, topic_path: str) -> str:
        """Readable name for a topic path.

        Unknown paths fall back to the path with separators turned into spaces.

        Example:
            >>> catalog.get_topic_display_name("statistics/data_analysis/averages")
            'Statistics and Probability → Data Analysis → Averages'
            >>> catalog.get_topic_display_name("custom/my_topic/x")
            'custom my topic x'
        """
        if topic_path in self._names:
            return self._names[topic_path]
        return re.sub(r"[_/]", " ", topic_path)

    def list_all_topic_paths(self) -> List[Dict[str, str]]:
        return [dict(option) for option in self._options]


@lru_cache(maxsize=1)
def get_topic_catalog() -> TopicCatalog:
    return TopicCatalog()
