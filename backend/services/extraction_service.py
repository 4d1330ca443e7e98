"""
Candidate Information Extraction Service
========================================
Rule-table driven extraction of candidate facts from free-form chat text.

Scalar fields (name, email, phone, experience, salary, location,
availability, graduation year, GPA) come from an ordered table of
``ExtractionRule`` records: for each field the first rule whose match
passes validation wins. Skills, interests, degrees and known cities come
from keyword dictionaries matched on token boundaries.

The engine is deterministic and never raises: internal failures are logged
and produce an empty result.
"""
import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from models.candidate import (
    Availability,
    ChatMessage,
    EducationEntry,
    Experience,
    LocationPreference,
    MessageRole,
    ProfileUpdate,
    SalaryExpectation,
    Schedule,
    SkillEntry,
    SkillLevel,
)
from services.profile_service import compute_update_confidence

logger = logging.getLogger(__name__)


# ============================================================================
# Rule records
# ============================================================================

def _always(value: Any) -> bool:
    return value is not None


@dataclass(frozen=True)
class ExtractionRule:
    """One pattern for one field. ``transform`` returns None to reject a match."""
    field: str
    pattern: Pattern
    transform: Callable[[re.Match], Any]
    validate: Callable[[Any], bool] = _always
    base_confidence: float = 0.8


class ExtractionResult(BaseModel):
    profile: ProfileUpdate = Field(default_factory=ProfileUpdate)
    field_confidences: Dict[str, float] = Field(default_factory=dict)
    confidence: float = 0.0
    matched_fields: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return self.profile.is_empty()

    def extracted_info(self) -> Dict[str, Any]:
        """JSON-friendly snapshot used as message metadata"""
        return self.profile.model_dump(mode="json", exclude_none=True)


# ============================================================================
# Transforms and validators
# ============================================================================

NAME_STOPWORDS = {
    "a", "an", "the", "and", "but", "or", "so", "also", "just", "not", "very", "really",
    "good", "fine", "great", "well", "ok", "okay", "sure", "happy", "glad", "excited",
    "interested", "looking", "based", "from", "currently", "here", "available", "open",
    "willing", "working", "at", "in", "on", "with", "for", "of", "to", "into", "about",
    "ready", "thinking", "applying", "curious", "passionate", "new", "still", "learning",
    "familiar", "experienced", "proficient", "comfortable", "confident", "tomorrow", "today",
    "back", "sorry", "afraid", "able", "going", "employed", "unemployed", "between", "over",
    "hoping", "seeking", "eager", "keen", "free", "flexible", "planning", "relocating",
    "moving", "living", "located", "studying", "graduating", "senior", "junior", "lead",
    "i", "you", "it", "that", "this", "there", "my", "your", "expecting", "asking",
    "fluent", "strong", "skilled", "certified", "doing", "done", "all", "been", "having",
    "actually", "pretty", "quite", "super", "definitely", "please", "thanks", "thank",
    "hi", "hello", "hey", "full", "part", "remote", "now", "asap", "immediately", "yes", "no",
    "developer", "engineer", "software", "student", "graduate", "manager", "designer",
}

WORD_NUMBERS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
}

CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP"}
CURRENCY_WORDS = {
    "usd": "USD", "dollars": "USD", "eur": "EUR", "euros": "EUR", "gbp": "GBP",
    "pounds": "GBP", "cad": "CAD", "inr": "INR",
}

MAX_EXPERIENCE_YEARS = 50


_LOWER_WORDS = {"of", "and", "the", "in", "at"}


def _title(text: str) -> str:
    words = text.split()
    return " ".join(
        w.lower() if i and w.lower() in _LOWER_WORDS else w[:1].upper() + w[1:]
        for i, w in enumerate(words)
    )


def _name_from_match(match: re.Match) -> Optional[str]:
    words = match.group(1).split()
    kept = []
    for word in words:
        if word.lower() in NAME_STOPWORDS or len(word) < 2:
            break
        kept.append(word)
    if not kept:
        return None
    return _title(" ".join(kept))


def _is_full_name(value: Optional[str]) -> bool:
    return value is not None and len(value.split()) >= 2


def _is_single_name(value: Optional[str]) -> bool:
    return value is not None and len(value.split()) == 1


def _normalize_phone(match: re.Match) -> str:
    return f"({match.group(1)}) {match.group(2)}-{match.group(3)}"


def _experience_from_years(match: re.Match) -> Tuple[int, int]:
    value = float(match.group(1))
    years = int(value)
    months = int(round((value - years) * 12))
    if months == 12:
        years, months = years + 1, 0
    return years, months


def _experience_from_months(match: re.Match) -> Tuple[int, int]:
    total = int(match.group(1))
    return divmod(total, 12)


def _experience_from_words(match: re.Match) -> Optional[Tuple[int, int]]:
    number = WORD_NUMBERS.get(match.group(1).lower())
    return (number, 0) if number is not None else None


def _valid_experience(value: Optional[Tuple[int, int]]) -> bool:
    if value is None:
        return False
    years, months = value
    return 0 <= years <= MAX_EXPERIENCE_YEARS and (years > 0 or months > 0)


def _parse_amount(raw: str, suffix: Optional[str]) -> float:
    amount = float(raw.replace(",", ""))
    if suffix and suffix.lower() == "k":
        amount *= 1000
    return amount


def _salary_symbol(match: re.Match) -> Tuple[float, str]:
    return _parse_amount(match.group(2), match.group(3)), CURRENCY_SYMBOLS[match.group(1)]


def _salary_code_first(match: re.Match) -> Tuple[float, str]:
    return _parse_amount(match.group(2), match.group(3)), CURRENCY_WORDS[match.group(1).lower()]


def _salary_code_last(match: re.Match) -> Tuple[float, str]:
    return _parse_amount(match.group(1), match.group(2)), CURRENCY_WORDS[match.group(3).lower()]


def _salary_context(match: re.Match) -> Tuple[float, str]:
    return _parse_amount(match.group(1), "k"), "USD"


def _valid_salary(value: Optional[Tuple[float, str]]) -> bool:
    return value is not None and 1000 <= value[0] <= 10_000_000


LOCATION_STOPWORDS = {"the", "a", "an", "my", "this", "that", "process", "touch", "favor", "charge", "between"}


def _location_from_match(match: re.Match) -> Optional[str]:
    raw = match.group(1).strip(" .")
    words = raw.split()
    if not words or words[0].lower() in LOCATION_STOPWORDS or len(words) > 4:
        return None
    return _title(raw)


def _count(token: Optional[str]) -> Optional[int]:
    if not token:
        return None
    token = token.lower()
    return int(token) if token.isdigit() else WORD_NUMBERS.get(token)


def _notice_weeks(match: re.Match) -> Optional[int]:
    count = _count(match.group(1))
    return count * 7 if count is not None else None


def _notice_days(match: re.Match) -> Optional[int]:
    return _count(match.group(1) or match.group(2))


def _notice_months(match: re.Match) -> Optional[int]:
    count = _count(match.group(1) or match.group(2))
    return count * 30 if count is not None else None


def _preferred_location(match: re.Match) -> Optional[List[str]]:
    location = _location_from_match(match)
    return [location] if location else None


def _valid_notice(value: Optional[int]) -> bool:
    return value is not None and 0 <= value <= 365


def _constant(value: Any) -> Callable[[re.Match], Any]:
    return lambda _match: value


def _group(index: int = 1, cast: Callable[[str], Any] = str) -> Callable[[re.Match], Any]:
    return lambda match: cast(match.group(index))


def _clean_phrase(match: re.Match) -> Optional[str]:
    phrase = match.group(1).strip(" .")
    return phrase or None


def _rx(pattern: str, flags: int = re.IGNORECASE) -> Pattern:
    return re.compile(pattern, flags)


_NUMBER = r"(\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?)"
_WORD_NUMBER = r"(\d+|" + "|".join(WORD_NUMBERS) + r")"
_PHRASE_END = r"(?=\s*(?:[,.!?;\n]|\band\b|\bbut\b|\bwith\b|\bso\b|$))"
_INSTITUTION_END = r"(?=\s*(?:[,.!?;\n]|\b(?:and|but|with|so|at|in|where|back|last)\b|$))"

DEFAULT_RULES: List[ExtractionRule] = [
    # name: full name before a single first name
    ExtractionRule("name", _rx(r"\b(?:my name is|my name's|i'm|i am|call me)\s+([a-z][a-z'\-]+(?:\s+[a-z][a-z'\-]+){1,2})"),
                   _name_from_match, _is_full_name, 0.9),
    ExtractionRule("name", _rx(r"\b(?:my name is|my name's|i'm|i am|call me)\s+([a-z][a-z'\-]+)"),
                   _name_from_match, _is_single_name, 0.7),

    ExtractionRule("email", _rx(r"\b([a-z0-9._%+\-]+@[a-z0-9.\-]+\.[a-z]{2,})\b"),
                   lambda m: m.group(1).lower(), base_confidence=0.95),

    ExtractionRule("phone", _rx(r"(?<!\d)(?:\+?1[\s.\-]?)?\(?(\d{3})\)?[\s.\-]?(\d{3})[\s.\-]?(\d{4})(?!\d)"),
                   _normalize_phone, base_confidence=0.9),

    ExtractionRule("experience", _rx(r"(\d+(?:\.\d+)?)\s*(?:\+|plus)?\s*(?:-\s*\d+\s*)?(?:years?|yrs?)\s+(?:of\s+)?(?:\w+\s+){0,3}?experience"),
                   _experience_from_years, _valid_experience, 0.85),
    ExtractionRule("experience", _rx(r"experience\s+(?:of\s+)?(?:about\s+|around\s+|over\s+)?(\d+(?:\.\d+)?)\s*\+?\s*(?:years?|yrs?)"),
                   _experience_from_years, _valid_experience, 0.8),
    ExtractionRule("experience", _rx(r"(?:been|worked|working|coding|programming|developing)\s+(?:\w+\s+){0,3}?for\s+(?:about\s+|around\s+|over\s+)?(\d+(?:\.\d+)?)\s*\+?\s*(?:years?|yrs?)"),
                   _experience_from_years, _valid_experience, 0.75),
    ExtractionRule("experience", _rx(r"(\d+)\s*months?\s+(?:of\s+)?(?:\w+\s+){0,3}?experience"),
                   _experience_from_months, _valid_experience, 0.8),
    ExtractionRule("experience", _rx(r"\b(" + "|".join(k for k in WORD_NUMBERS if k not in ("a", "an")) + r")\s+years?\s+(?:of\s+)?(?:\w+\s+){0,3}?experience"),
                   _experience_from_words, _valid_experience, 0.75),

    ExtractionRule("experience.description", _rx(r"\b(?:i(?:'ve| have)? worked as|i(?:'m| am) working as|i work as|my current role is|currently (?:working )?as)\s+(?:an?\s+)?([a-z][a-z /\-]{2,50}?)" + _PHRASE_END),
                   _clean_phrase, base_confidence=0.7),

    ExtractionRule("salary", _rx(r"([$€£])\s?" + _NUMBER + r"\s*(k)?\b"),
                   _salary_symbol, _valid_salary, 0.85),
    ExtractionRule("salary", _rx(r"\b(usd|eur|gbp|cad|inr)\s?" + _NUMBER + r"\s*(k)?\b"),
                   _salary_code_first, _valid_salary, 0.8),
    ExtractionRule("salary", _rx(_NUMBER + r"\s*(k)?\s*(usd|eur|gbp|cad|inr|dollars|euros|pounds)\b"),
                   _salary_code_last, _valid_salary, 0.8),
    ExtractionRule("salary", _rx(r"(?:salary|compensation|pay|looking for|expecting|expect|asking for|range)\D{0,30}?(\d+(?:\.\d+)?)\s*k\b"),
                   _salary_context, _valid_salary, 0.7),

    ExtractionRule("salary.negotiable", _rx(r"\b(?:non-negotiable|not negotiable|firm on)\b"), _constant(False), base_confidence=0.8),
    ExtractionRule("salary.negotiable", _rx(r"\b(?:negotiable|flexible on (?:salary|compensation|pay)|open to discuss)"), _constant(True), base_confidence=0.7),

    ExtractionRule("location.current", _rx(r"\b(?:i live in|i'm living in|i am living in|i'm based in|i am based in|based in|located in|i'm in|i am in|i'm from|i am from)\s+([a-z][a-z .'\-]*?)" + r"(?=\s*(?:[,.!?;\n]|\band\b|\bbut\b|\bwith\b|\barea\b|$))"),
                   _location_from_match, base_confidence=0.8),
    ExtractionRule("location.willing_to_relocate", _rx(r"\b(?:not willing to relocate|can't relocate|cannot relocate|won't relocate|unable to relocate|not open to relocat)"),
                   _constant(False), base_confidence=0.8),
    ExtractionRule("location.willing_to_relocate", _rx(r"\b(?:willing to relocate|open to relocat|happy to relocate|can relocate|ready to relocate|would relocate)"),
                   _constant(True), base_confidence=0.8),
    ExtractionRule("location.preferred_locations", _rx(r"\b(?:relocate to|move to|prefer to work in|prefer working in)\s+([a-z][a-z .'\-]*?)" + r"(?=\s*(?:[,.!?;\n]|\band\b|\bbut\b|\bif\b|$))"),
                   _preferred_location, base_confidence=0.7),

    ExtractionRule("availability.notice_period", _rx(r"\b(?:immediately|asap|as soon as possible|right away|start (?:right )?now)\b"),
                   _constant(0), _valid_notice, 0.8),
    ExtractionRule("availability.notice_period", _rx(r"\b" + _WORD_NUMBER + r"[\s\-]weeks?(?:'|’)?\s+notice"),
                   _notice_weeks, _valid_notice, 0.85),
    ExtractionRule("availability.notice_period", _rx(r"\bin\s+" + _WORD_NUMBER + r"\s+weeks?\b"),
                   _notice_weeks, _valid_notice, 0.75),
    ExtractionRule("availability.notice_period", _rx(r"\b(\d+)[\s\-]days?(?:'|’)?\s+notice|\bin\s+(\d+)\s+days?\b"),
                   _notice_days, _valid_notice, 0.75),
    ExtractionRule("availability.notice_period", _rx(r"\b" + _WORD_NUMBER + r"[\s\-]months?(?:'|’)?\s+notice|\bin\s+" + _WORD_NUMBER + r"\s+months?\b"),
                   _notice_months, _valid_notice, 0.7),
    ExtractionRule("availability.notice_period", _rx(r"\bnext month\b"), _constant(30), _valid_notice, 0.6),
    ExtractionRule("availability.preferred_schedule", _rx(r"\bpart[\s\-]time\b"), _constant(Schedule.PART_TIME), base_confidence=0.7),
    ExtractionRule("availability.preferred_schedule", _rx(r"\bfull[\s\-]time\b"), _constant(Schedule.FULL_TIME), base_confidence=0.7),
    ExtractionRule("availability.preferred_schedule", _rx(r"\bflexible (?:hours|schedule)\b"), _constant(Schedule.FLEXIBLE), base_confidence=0.6),

    ExtractionRule("education.graduation_year", _rx(r"(?:graduated|graduating|graduate|class of|graduation)\D{0,20}((?:19|20)\d{2})\b"),
                   _group(1, int), lambda y: 1900 <= y <= 2100, 0.8),
    ExtractionRule("education.gpa", _rx(r"\bgpa\s*(?:of|:|was|is)?\s*(\d{1,2}(?:\.\d{1,2})?)"),
                   _group(1, float), lambda g: 0 <= g <= 10, 0.8),
    ExtractionRule("education.institution", _rx(r"\b(?:from|at)\s+((?:the\s+)?(?:[a-z&.]+\s+){0,3}?(?:university|college|institute of technology|institute)(?:\s+of\s+[a-z]+)?)" + _INSTITUTION_END),
                   lambda m: _title(re.sub(r"^the\s+", "", m.group(1).strip(), flags=re.I)), base_confidence=0.7),
    ExtractionRule("education.institution", _rx(r"\b(?:from|at)\s+(mit|stanford|harvard|berkeley|caltech|oxford|cambridge)\b"),
                   lambda m: m.group(1).upper() if m.group(1).lower() == "mit" else _title(m.group(1)), base_confidence=0.7),
    ExtractionRule("education.field", _rx(r"\b(?:degree|bachelor'?s?|master'?s?|ph\.?d|bsc|msc|mba|b\.s\.|m\.s\.|b\.a\.|major(?:ed)?)\s+(?:degree\s+)?in\s+([a-z][a-z ]{2,40}?)" + r"(?=\s*(?:[,.!?;\n]|\bfrom\b|\bat\b|\band\b|$))"),
                   lambda m: _title(m.group(1).strip()), base_confidence=0.7),
]


# ============================================================================
# Keyword dictionaries
# ============================================================================

SKILL_ALIASES: Dict[str, str] = {
    "javascript": "JavaScript", "js": "JavaScript", "ecmascript": "JavaScript",
    "typescript": "TypeScript",
    "python": "Python", "java": "Java", "golang": "Go", "rust": "Rust", "ruby": "Ruby",
    "php": "PHP", "swift": "Swift", "kotlin": "Kotlin", "scala": "Scala",
    "c++": "C++", "cpp": "C++", "c#": "C#", "csharp": "C#",
    "react": "React", "react.js": "React", "reactjs": "React",
    "angular": "Angular", "vue": "Vue.js", "vue.js": "Vue.js", "vuejs": "Vue.js",
    "node": "Node.js", "node.js": "Node.js", "nodejs": "Node.js",
    "express.js": "Express", "expressjs": "Express",
    "next.js": "Next.js", "nextjs": "Next.js",
    "django": "Django", "flask": "Flask", "fastapi": "FastAPI",
    "spring boot": "Spring Boot", ".net": ".NET", "dotnet": ".NET",
    "graphql": "GraphQL", "rest api": "REST API", "rest apis": "REST API", "restful": "REST API",
    "aws": "AWS", "amazon web services": "AWS", "azure": "Azure",
    "gcp": "GCP", "google cloud": "GCP",
    "docker": "Docker", "kubernetes": "Kubernetes", "k8s": "Kubernetes",
    "terraform": "Terraform", "jenkins": "Jenkins", "ci/cd": "CI/CD", "git": "Git",
    "sql": "SQL", "postgresql": "PostgreSQL", "postgres": "PostgreSQL", "mysql": "MySQL",
    "mongodb": "MongoDB", "mongo": "MongoDB", "redis": "Redis",
    "elasticsearch": "Elasticsearch", "kafka": "Kafka",
    "html": "HTML", "html5": "HTML", "css": "CSS", "css3": "CSS", "sass": "Sass",
    "tailwind": "Tailwind CSS", "microservices": "Microservices",
    "tensorflow": "TensorFlow", "pytorch": "PyTorch", "pandas": "Pandas",
    "linux": "Linux", "agile": "Agile", "scrum": "Scrum",
}

SKILL_LEVEL_WORDS: List[Tuple[SkillLevel, Tuple[str, ...]]] = [
    (SkillLevel.EXPERT, ("expert", "senior", "lead", "principal", "architect")),
    (SkillLevel.ADVANCED, ("advanced", "proficient", "strong", "extensive", "deep")),
    (SkillLevel.BEGINNER, ("beginner", "basic", "learning", "junior", "novice")),
    (SkillLevel.INTERMEDIATE, ("intermediate", "familiar", "comfortable")),
]

SKILL_BOOST_CUES = {
    "experience with": 0.1, "experience in": 0.1, "years of": 0.1, "worked with": 0.1,
    "built": 0.05, "developed": 0.05, "project": 0.05, "production": 0.05, "shipped": 0.05,
}
SKILL_HEDGE_CUES = ("interested in", "want to learn", "would like to learn", "heard of",
                    "haven't used", "never used", "not familiar", "hope to learn")

SKILL_BASE_CONFIDENCE = 0.5
SKILL_MENTION_BONUS = 0.2
SKILL_HEDGE_PENALTY = 0.3
SKILL_MIN_CONFIDENCE = 0.3
CONTEXT_RADIUS = 60

DEGREE_PATTERNS: List[Tuple[Pattern, str]] = [
    (_rx(r"\bph\.?d\b|\bdoctorate\b"), "PhD"),
    (_rx(r"\bmba\b"), "MBA"),
    (_rx(r"\bmaster'?s?\s+(?:degree|in|of)\b|\bmaster's\b|\bmsc\b|\bm\.sc?\.|\bm\.s\."), "Master's"),
    (_rx(r"\bbachelor'?s?\b|\bbsc\b|\bb\.sc?\.|\bb\.s\.|\bb\.a\."), "Bachelor's"),
    (_rx(r"\bassociate'?s? degree\b"), "Associate's"),
    (_rx(r"\bbootcamp\b"), "Bootcamp"),
]

CITY_ALIASES: Dict[str, str] = {
    "san francisco": "San Francisco", "new york": "New York", "nyc": "New York",
    "los angeles": "Los Angeles", "seattle": "Seattle", "austin": "Austin",
    "boston": "Boston", "chicago": "Chicago", "denver": "Denver", "portland": "Portland",
    "atlanta": "Atlanta", "miami": "Miami", "toronto": "Toronto", "vancouver": "Vancouver",
    "london": "London", "berlin": "Berlin", "paris": "Paris", "amsterdam": "Amsterdam",
    "dublin": "Dublin", "bangalore": "Bangalore", "singapore": "Singapore", "sydney": "Sydney",
}

INTEREST_PHRASES: Dict[str, str] = {
    "machine learning": "Machine Learning", "artificial intelligence": "Artificial Intelligence",
    "ai": "Artificial Intelligence", "data science": "Data Science",
    "web development": "Web Development", "mobile development": "Mobile Development",
    "cloud": "Cloud Computing", "cloud computing": "Cloud Computing", "devops": "DevOps",
    "open source": "Open Source", "security": "Security", "cybersecurity": "Security",
    "blockchain": "Blockchain", "game development": "Game Development",
    "ux": "UX Design", "user experience": "UX Design",
    "distributed systems": "Distributed Systems", "startups": "Startups",
    "mentoring": "Mentoring", "frontend": "Frontend Development", "backend": "Backend Development",
}
INTEREST_CUES = _rx(r"\b(?:interested in|interest in|passionate about|love|enjoy|excited about|curious about|fascinated by)\b")

SENTENCE_SPLIT = re.compile(r"[!?\n]+|\.(?:\s+|$)")


def _keyword_pattern(keywords: Iterable[str]) -> Pattern:
    ordered = sorted(keywords, key=len, reverse=True)
    return _rx(r"(?<![a-z0-9])(" + "|".join(re.escape(k) for k in ordered) + r")(?![a-z0-9])")


def _clamp(value: float) -> float:
    return round(max(0.0, min(value, 1.0)), 4)


# ============================================================================
# Engine
# ============================================================================

class ExtractionEngine:
    """
    Best-effort structured extraction over accumulated conversation text.

    Usage:
        engine = ExtractionEngine()
        result = engine.extract(session.messages)
        result.profile  # ProfileUpdate with only the fields that were found
    """

    def __init__(self, rules: Optional[Sequence[ExtractionRule]] = None,
                 skill_aliases: Optional[Dict[str, str]] = None):
        self.rules: List[ExtractionRule] = list(rules if rules is not None else DEFAULT_RULES)
        self.skill_aliases: Dict[str, str] = dict(skill_aliases if skill_aliases is not None else SKILL_ALIASES)
        self._skill_pattern = _keyword_pattern(self.skill_aliases)
        self._city_pattern = _keyword_pattern(CITY_ALIASES)
        self._interest_pattern = _keyword_pattern(INTEREST_PHRASES)

        self._extraction_count = 0
        self._failure_count = 0
        self._field_hits: Counter = Counter()

    # ------------------------------------------------------------------
    # Extension
    # ------------------------------------------------------------------

    def add_rule(self, rule: ExtractionRule, first: bool = False) -> None:
        """Register a rule; ``first`` puts it ahead of existing rules for its field"""
        if first:
            self.rules.insert(0, rule)
        else:
            self.rules.append(rule)

    def add_skill(self, alias: str, canonical: Optional[str] = None) -> None:
        self.skill_aliases[alias.lower()] = canonical or alias
        self._skill_pattern = _keyword_pattern(self.skill_aliases)

    def stats(self) -> Dict[str, Any]:
        return {
            "extractions": self._extraction_count,
            "failures": self._failure_count,
            "rules": len(self.rules),
            "skills_known": len(set(self.skill_aliases.values())),
            "field_hits": dict(self._field_hits),
        }

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract(self, source: Union[str, Sequence[ChatMessage]]) -> ExtractionResult:
        """Extract a partial profile from text or from the user messages of a conversation"""
        self._extraction_count += 1
        try:
            text = self._conversation_text(source)
            if not text.strip():
                return ExtractionResult()
            result = self._extract_text(text)
        except Exception:
            self._failure_count += 1
            logger.exception("Extraction failed; returning empty result")
            return ExtractionResult()

        self._field_hits.update(result.matched_fields)
        return result

    @staticmethod
    def _conversation_text(source: Union[str, Sequence[ChatMessage]]) -> str:
        if isinstance(source, str):
            return source
        return ". ".join(m.content.strip() for m in source if m.role == MessageRole.USER)

    def _apply_rules(self, text: str) -> Dict[str, Tuple[Any, float]]:
        found: Dict[str, Tuple[Any, float]] = {}
        for rule in self.rules:
            if rule.field in found:
                continue
            for match in rule.pattern.finditer(text):
                value = rule.transform(match)
                if rule.validate(value):
                    found[rule.field] = (value, rule.base_confidence)
                    break
        return found

    def _extract_text(self, text: str) -> ExtractionResult:
        found = self._apply_rules(text)
        fields: Dict[str, Any] = {}
        confidences: Dict[str, float] = {}

        for key in ("name", "email", "phone"):
            if key in found:
                fields[key], confidences[key] = found[key]

        if "experience" in found:
            (years, months), conf = found["experience"]
            kwargs = {"years": years, "months": months}
            if "experience.description" in found:
                kwargs["description"] = found["experience.description"][0]
            fields["experience"] = Experience(**kwargs)
            confidences["experience"] = conf
        elif "experience.description" in found:
            fields["experience"] = Experience(description=found["experience.description"][0])
            confidences["experience"] = found["experience.description"][1]

        if "salary" in found:
            (amount, currency), conf = found["salary"]
            kwargs = {"expected": amount, "currency": currency}
            if "salary.negotiable" in found:
                kwargs["negotiable"] = found["salary.negotiable"][0]
            fields["salary"] = SalaryExpectation(**kwargs)
            confidences["salary"] = conf

        location, location_conf = self._location(text, found)
        if location is not None:
            fields["location"], confidences["location"] = location, location_conf

        availability = {key.split(".", 1)[1]: found[key][0] for key in found if key.startswith("availability.")}
        if availability:
            fields["availability"] = Availability(**availability)
            confidences["availability"] = max(found[f"availability.{k}"][1] for k in availability)

        education = self._education(text, found)
        if education:
            fields["education"], confidences["education"] = education, 0.8

        skills = self._skills(text)
        if skills:
            fields["skills"] = skills
            confidences["skills"] = _clamp(sum(s.confidence for s in skills) / len(skills))

        interests = self._interests(text)
        if interests:
            fields["interests"], confidences["interests"] = interests, 0.6

        profile = ProfileUpdate(**fields)
        return ExtractionResult(
            profile=profile,
            field_confidences=confidences,
            confidence=compute_update_confidence(profile),
            matched_fields=sorted(fields),
        )

    def _location(self, text: str, found: Dict[str, Tuple[Any, float]]) -> Tuple[Optional[LocationPreference], float]:
        kwargs: Dict[str, Any] = {}
        confidence = 0.0
        if "location.current" in found:
            kwargs["current"], confidence = found["location.current"]
        else:
            match = self._city_pattern.search(text)
            if match:
                kwargs["current"] = CITY_ALIASES[match.group(1).lower()]
                confidence = 0.5
        for key in ("location.willing_to_relocate", "location.preferred_locations"):
            if key in found:
                kwargs[key.split(".", 1)[1]] = found[key][0]
                confidence = max(confidence, found[key][1])
        if not kwargs:
            return None, 0.0
        return LocationPreference(**kwargs), confidence

    def _education(self, text: str, found: Dict[str, Tuple[Any, float]]) -> List[EducationEntry]:
        degree = None
        for pattern, label in DEGREE_PATTERNS:
            if pattern.search(text):
                degree = label
                break
        if degree is None:
            return []
        if "education.field" in found:
            degree = f"{degree} in {found['education.field'][0]}"
        kwargs: Dict[str, Any] = {"degree": degree}
        for key in ("institution", "graduation_year", "gpa"):
            if f"education.{key}" in found:
                kwargs[key] = found[f"education.{key}"][0]
        return [EducationEntry(**kwargs)]

    def _skills(self, text: str) -> List[SkillEntry]:
        best: Dict[str, SkillEntry] = {}
        for match in self._skill_pattern.finditer(text):
            canonical = self.skill_aliases[match.group(1).lower()]
            before, after = _sentence_context(text, match.start(), match.end())
            window = f"{before} {after}"

            confidence = SKILL_BASE_CONFIDENCE + SKILL_MENTION_BONUS
            confidence += sum(boost for cue, boost in SKILL_BOOST_CUES.items() if cue in window)
            hedged = any(cue in before for cue in SKILL_HEDGE_CUES)
            if hedged:
                confidence -= SKILL_HEDGE_PENALTY
            confidence = _clamp(confidence)
            if confidence <= SKILL_MIN_CONFIDENCE:
                continue

            level = SkillLevel.BEGINNER if hedged else _skill_level(window)
            entry = SkillEntry(name=canonical, level=level, confidence=confidence)
            current = best.get(canonical)
            if current is None or entry.confidence > current.confidence:
                best[canonical] = entry
        return list(best.values())

    def _interests(self, text: str) -> List[str]:
        interests: List[str] = []
        for sentence in SENTENCE_SPLIT.split(text):
            if not INTEREST_CUES.search(sentence):
                continue
            for match in self._interest_pattern.finditer(sentence):
                label = INTEREST_PHRASES[match.group(1).lower()]
                if label not in interests:
                    interests.append(label)
        return interests


def _sentence_context(text: str, start: int, end: int, radius: int = CONTEXT_RADIUS) -> Tuple[str, str]:
    """Lowercased text around a match, clipped to the enclosing sentence"""
    before = text[max(0, start - radius):start]
    after = text[end:end + radius]
    cut = max(before.rfind(". "), before.rfind("!"), before.rfind("?"), before.rfind("\n"))
    if cut >= 0:
        before = before[cut + 1:]
    stop = SENTENCE_SPLIT.search(after)
    if stop:
        after = after[:stop.start()]
    return before.lower(), after.lower()


def _skill_level(window: str) -> SkillLevel:
    for level, words in SKILL_LEVEL_WORDS:
        if any(re.search(rf"\b{word}\b", window) for word in words):
            return level
    return SkillLevel.INTERMEDIATE


_engine: Optional[ExtractionEngine] = None


def get_extraction_engine() -> ExtractionEngine:
    global _engine
    if _engine is None:
        _engine = ExtractionEngine()
    return _engine
