"""
政党关键词与情感词表

词表以数据文件形式维护（app/data/political_keywords.json），
可通过 POLITICAL_KEYWORDS_PATH 指向自定义文件。
"""

import json
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from app.core.exceptions import ConfigurationException

DEFAULT_KEYWORDS_PATH = Path(__file__).resolve().parent.parent / "data" / "political_keywords.json"


def normalize_text(text: str) -> str:
    """统一Unicode组合形式并转小写，孟加拉文的 য় 等字符存在两种编码"""
    return unicodedata.normalize("NFC", text).lower()


def _normalize_all(words: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(normalize_text(w).strip() for w in words if w and w.strip()))


@dataclass(frozen=True)
class PoliticalKeywords:
    """不可变词表，加载时统一规范化"""
    bjp: Tuple[str, ...]
    tmc: Tuple[str, ...]
    positive: Tuple[str, ...]
    negative: Tuple[str, ...]

    @classmethod
    def from_dict(cls, data: dict) -> "PoliticalKeywords":
        try:
            sentiment = data.get("sentiment", {})
            keywords = cls(
                bjp=_normalize_all(data["bjp"]),
                tmc=_normalize_all(data["tmc"]),
                positive=_normalize_all(sentiment.get("positive", [])),
                negative=_normalize_all(sentiment.get("negative", [])),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ConfigurationException(f"关键词文件格式错误: {e!r}")

        if not keywords.bjp or not keywords.tmc:
            raise ConfigurationException("关键词文件中的政党词表不能为空")
        return keywords

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "PoliticalKeywords":
        """从JSON文件加载词表"""
        source = Path(path) if path else DEFAULT_KEYWORDS_PATH
        try:
            with source.open(encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationException(f"无法读取关键词文件 {source}: {e}")
        return cls.from_dict(data)


def contains_any(normalized_text: str, keywords: Iterable[str]) -> bool:
    """子串匹配，调用方负责先规范化文本"""
    return any(keyword in normalized_text for keyword in keywords)


def count_matches(normalized_text: str, keywords: Iterable[str]) -> int:
    """统计出现过的不同关键词数量"""
    return sum(1 for keyword in keywords if keyword in normalized_text)
