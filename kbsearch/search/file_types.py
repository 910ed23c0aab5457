import json
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, TypeAdapter, field_validator

from kbsearch.logging import get_logger

_logger = get_logger(__name__)

FILE_TYPE_CATEGORIES: dict[str, frozenset[str]] = {
    "document": frozenset({"pdf", "docx", "doc", "txt", "md"}),
    "spreadsheet": frozenset({"xlsx", "xls", "csv"}),
    "presentation": frozenset({"pptx", "ppt"}),
    "image": frozenset({"jpg", "jpeg", "png", "gif", "webp"}),
    "audio": frozenset({"mp3", "wav", "m4a", "aac"}),
    "video": frozenset({"mp4", "mov", "avi", "mkv"}),
}

DEFAULT_CATEGORY = "document"

_CATEGORY_ALIASES = {
    "文档": "document",
    "表格": "spreadsheet",
    "演示": "presentation",
    "图片": "image",
    "音频": "audio",
    "视频": "video",
    "documents": "document",
    "docs": "document",
    "spreadsheets": "spreadsheet",
    "table": "spreadsheet",
    "tables": "spreadsheet",
    "presentations": "presentation",
    "slides": "presentation",
    "images": "image",
    "photo": "image",
    "photos": "image",
    "videos": "video",
}


def normalize_file_type(file_type: str | None) -> str | None:
    if not file_type:
        return None
    return file_type.strip().lower().lstrip(".") or None


def normalize_category(name: str | None) -> str | None:
    """Map a category name or alias (English or Chinese) to a key of FILE_TYPE_CATEGORIES."""
    if not name:
        return None
    key = name.strip().lower()
    key = _CATEGORY_ALIASES.get(key, key)
    return key if key in FILE_TYPE_CATEGORIES else None


def extensions_for(category: str | None) -> frozenset[str] | None:
    key = normalize_category(category)
    return FILE_TYPE_CATEGORIES[key] if key else None


@dataclass(frozen=True)
class PreferenceRule:
    keywords: tuple[str, ...]
    category: str


class _RuleModel(BaseModel):
    keywords: list[str]
    category: str

    @field_validator("category")
    @classmethod
    def _known_category(cls, v: str) -> str:
        if not (key := normalize_category(v)):
            raise ValueError(f"Unknown file type category: {v}")
        return key


DEFAULT_PREFERENCE_RULES: tuple[PreferenceRule, ...] = (
    PreferenceRule(("表格", "excel", "数据", "spreadsheet", "csv"), "spreadsheet"),
    PreferenceRule(("演示", "ppt", "幻灯片", "presentation", "slides"), "presentation"),
    PreferenceRule(("图片", "照片", "图像", "image", "photo", "picture"), "image"),
    PreferenceRule(("视频", "录像", "video", "movie"), "video"),
    PreferenceRule(("音频", "声音", "录音", "audio", "sound", "podcast"), "audio"),
)


class TypePreferences:
    """Keyword heuristics mapping a query to the file types it most likely wants.

    Rules are checked in order; the first rule with a keyword contained in the
    lowercased query wins, otherwise the default category applies.
    """

    def __init__(
        self,
        rules: tuple[PreferenceRule, ...] = DEFAULT_PREFERENCE_RULES,
        default_category: str = DEFAULT_CATEGORY,
    ):
        if normalize_category(default_category) is None:
            raise ValueError(f"Unknown file type category: {default_category}")
        self.rules = rules
        self.default_category = normalize_category(default_category)

    @classmethod
    def from_file(cls, path: Path) -> "TypePreferences":
        raw = json.loads(path.read_text())
        models = TypeAdapter(list[_RuleModel]).validate_python(raw)
        rules = tuple(PreferenceRule(tuple(k.lower() for k in m.keywords), m.category) for m in models)
        _logger.info("Loaded %d type preference rules from %s", len(rules), path)
        return cls(rules)

    def preferred_category(self, query: str) -> str:
        query_lower = query.lower()
        for rule in self.rules:
            if any(keyword in query_lower for keyword in rule.keywords):
                return rule.category
        return self.default_category

    def preferred_types(self, query: str) -> frozenset[str]:
        return FILE_TYPE_CATEGORIES[self.preferred_category(query)]

    @staticmethod
    def score(file_type: str | None, preferred: frozenset[str]) -> int:
        normalized = normalize_file_type(file_type)
        return 1 if normalized and normalized in preferred else 0
