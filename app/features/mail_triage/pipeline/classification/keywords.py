"""
Keyword rules for the mail classifier.

Rules are plain data: tiered keyword lists plus the two decision thresholds.
The built-in defaults can be replaced wholesale (or per key) with a JSON file.
"""

import json
from dataclasses import dataclass, fields
from pathlib import Path

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

HIGH_WEIGHT = 3
MEDIUM_WEIGHT = 2
LOW_WEIGHT = 1


@dataclass(frozen=True, slots=True)
class KeywordTiers:
    high: tuple[str, ...] = ()
    medium: tuple[str, ...] = ()
    low: tuple[str, ...] = ()

    def score(self, text: str) -> int:
        """Sum of tier weights for every keyword found as a substring of `text`."""
        return (
            HIGH_WEIGHT * sum(1 for kw in self.high if kw in text)
            + MEDIUM_WEIGHT * sum(1 for kw in self.medium if kw in text)
            + LOW_WEIGHT * sum(1 for kw in self.low if kw in text)
        )

    @classmethod
    def from_dict(cls, data: dict) -> "KeywordTiers":
        return cls(
            high=_lowered(data.get("high", ())),
            medium=_lowered(data.get("medium", ())),
            low=_lowered(data.get("low", ())),
        )


DEFAULT_JOB_KEYWORDS = KeywordTiers(
    high=("案件", "募集", "単価", "エンド直", "急募"),
    medium=("必須スキル", "業務内容", "勤務地", "稼働", "面談", "精算"),
    low=("java", "python", "aws", "react", "typescript", "php", "リモート", "長期"),
)

DEFAULT_TALENT_KEYWORDS = KeywordTiers(
    high=("スキルシート", "希望単価", "経歴書", "人材情報"),
    medium=("稼働可能", "最寄駅", "最寄り駅", "候補者"),
    low=("氏名", "イニシャル"),
)

DEFAULT_EXCLUSION_KEYWORDS = (
    "ご挨拶",
    "ありがとうございました",
    "御礼",
    "お礼",
    "日程調整",
    "打ち合わせ",
    "打合せ",
    "会議",
    "ミーティング",
    "セミナー",
    "メルマガ",
    "配信停止",
    "unsubscribe",
    "newsletter",
)


@dataclass(frozen=True, slots=True)
class KeywordRules:
    job: KeywordTiers = DEFAULT_JOB_KEYWORDS
    talent: KeywordTiers = DEFAULT_TALENT_KEYWORDS
    exclusion: tuple[str, ...] = DEFAULT_EXCLUSION_KEYWORDS
    job_threshold: int = 2
    talent_threshold: int = 3

    def has_exclusion(self, text: str) -> bool:
        return any(kw in text for kw in self.exclusion)

    def has_high_job_keyword(self, text: str) -> bool:
        return any(kw in text for kw in self.job.high)


def _lowered(words) -> tuple[str, ...]:
    # Matching runs against lower-cased text, so keywords are stored lower-cased
    return tuple(str(word).strip().lower() for word in words if str(word).strip())


def load_keyword_rules(path: str | None = None) -> KeywordRules:
    """
    Build rules from defaults, overridden by the JSON file at `path`.

    The file may carry any of: "job" / "talent" ({"high": [...], "medium": [...],
    "low": [...]}), "exclusion" (list), "job_threshold", "talent_threshold".
    Missing keys keep their defaults.

    Raises:
        ValueError: If the file is not a JSON object or has unknown keys.
    """
    if not path:
        return KeywordRules()

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Keyword rules file must contain a JSON object: {path}")

    known = {f.name for f in fields(KeywordRules)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keyword rule keys: {sorted(unknown)}")

    overrides: dict = {}
    if "job" in data:
        overrides["job"] = KeywordTiers.from_dict(data["job"])
    if "talent" in data:
        overrides["talent"] = KeywordTiers.from_dict(data["talent"])
    if "exclusion" in data:
        overrides["exclusion"] = _lowered(data["exclusion"])
    for threshold in ("job_threshold", "talent_threshold"):
        if threshold in data:
            overrides[threshold] = int(data[threshold])

    logger.info("Loaded keyword rules override", path=path, keys=sorted(overrides))
    return KeywordRules(**overrides)
