"""
Error classification for schema discovery

Decides whether a server error record reports a MISSING field (the
payload lacks structure the server expects) or a BUSINESS validation
failure (the field is present but its value is refused).

The server only says this in free-text French messages, so the decision
is a heuristic over message wording. It is kept in one ordered rule
table, first match wins:

    rule                   matches (case-insensitive)                  category
    ---------------------  ------------------------------------------  --------
    structure_required     "doit contenir"                             MISSING
    structure_underlying   "sous-jacent"                               MISSING
    absent_with_path       "est absent :"                              MISSING
    absent_sentence        "est absent ."                              MISSING
    absent_empty_value     "absent"/"manquant" and "X=" or "X=." with
                           nothing after it                            MISSING
    absent_no_value        "est absent"/"est manquant" and no "="      MISSING
    (default)              anything else, including "X=<value>"        BUSINESS

When the server's wording changes, edit DEFAULT_RULES (or pass custom
rules to ErrorClassifier) and extend the rule-table tests.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from websrm.models.enrolment import ErrorRecord


class ErrorCategory(str, Enum):
    """Classification of a server error record"""
    MISSING_FIELD = "MISSING_FIELD"
    BUSINESS_VALIDATION = "BUSINESS_VALIDATION"


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the rule table"""
    name: str
    category: ErrorCategory
    predicate: Callable[[str], bool]
    description: str = ""

    def matches(self, message: str) -> bool:
        return self.predicate(message.lower())


_EMPTY_ASSIGNMENT = re.compile(r"=\s*\.?\s*$")


def _has_absent_marker(msg: str) -> bool:
    return "absent" in msg or "manquant" in msg


DEFAULT_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "structure_required",
        ErrorCategory.MISSING_FIELD,
        lambda msg: "doit contenir" in msg,
        "A container must contain an element it does not have",
    ),
    ClassificationRule(
        "structure_underlying",
        ErrorCategory.MISSING_FIELD,
        lambda msg: "sous-jacent" in msg,
        "An underlying structure is missing",
    ),
    ClassificationRule(
        "absent_with_path",
        ErrorCategory.MISSING_FIELD,
        lambda msg: "est absent :" in msg,
        "'Le champ est absent : a/b'",
    ),
    ClassificationRule(
        "absent_sentence",
        ErrorCategory.MISSING_FIELD,
        lambda msg: "est absent ." in msg,
        "'Un champ est absent .'",
    ),
    ClassificationRule(
        "absent_empty_value",
        ErrorCategory.MISSING_FIELD,
        lambda msg: _has_absent_marker(msg)
        and (bool(_EMPTY_ASSIGNMENT.search(msg)) or "=." in msg),
        "'absent ou invalide : X=' with no concrete value",
    ),
    ClassificationRule(
        "absent_no_value",
        ErrorCategory.MISSING_FIELD,
        lambda msg: ("est absent" in msg or "est manquant" in msg) and "=" not in msg,
        "Absent marker without any value assignment",
    ),
)

DEFAULT_RULE_NAME = "default_business"


@dataclass(frozen=True)
class ClassifiedError:
    """An error record with its category, deciding rule and field path"""
    record: ErrorRecord
    category: ErrorCategory
    rule: str
    field_path: Optional[str] = None

    @property
    def is_missing_field(self) -> bool:
        return self.category == ErrorCategory.MISSING_FIELD


# "... : transActu/noTrans" or "... : noTrans=." or "... : noTrans=ABC"
_PATH_AFTER_COLON = re.compile(r":\s*([A-Za-z_][\w./\[\]-]*?)\s*(?:=|\.?\s*$)")
_IDENTIFIER = re.compile(r"^[A-Za-z_][\w./\[\]-]*$")


def extract_field_path(record: Union[ErrorRecord, str]) -> Optional[str]:
    """
    Field path named by an error, if one can be found

    Looks for a path after the last colon of the message, then falls back
    to the record id when it looks like an identifier.
    """
    message = record if isinstance(record, str) else record.message

    if ":" in message:
        tail = message[message.rfind(":"):]
        match = _PATH_AFTER_COLON.match(tail)
        if match:
            return match.group(1).rstrip("./")

    if isinstance(record, ErrorRecord) and _IDENTIFIER.match(record.id or ""):
        return record.id

    return None


class ErrorClassifier:
    """
    Applies a rule table to error records

    Example:
        >>> classifier = ErrorClassifier()
        >>> classifier.is_missing_field("Le champ est absent : transActu/noTrans")
        True
        >>> classifier.is_missing_field("Valeur absente ou invalide : mont=12.5")
        False
    """

    def __init__(self, rules: Optional[Sequence[ClassificationRule]] = None) -> None:
        self._rules: Tuple[ClassificationRule, ...] = tuple(
            DEFAULT_RULES if rules is None else rules
        )

    @property
    def rules(self) -> Tuple[ClassificationRule, ...]:
        return self._rules

    def match(self, message: str) -> Tuple[ErrorCategory, str]:
        """Return (category, rule name) for a message"""
        for rule in self._rules:
            if rule.matches(message or ""):
                return rule.category, rule.name
        return ErrorCategory.BUSINESS_VALIDATION, DEFAULT_RULE_NAME

    def classify(self, record: Union[ErrorRecord, str]) -> ClassifiedError:
        if isinstance(record, str):
            record = ErrorRecord(message=record)
        category, rule = self.match(record.message)
        return ClassifiedError(
            record=record,
            category=category,
            rule=rule,
            field_path=extract_field_path(record),
        )

    def classify_all(self, records: Iterable[ErrorRecord]) -> List[ClassifiedError]:
        return [self.classify(record) for record in records]

    def is_missing_field(self, record: Union[ErrorRecord, str]) -> bool:
        """The predicate the discovery harness converges on"""
        message = record if isinstance(record, str) else record.message
        return self.match(message)[0] == ErrorCategory.MISSING_FIELD


_default_classifier = ErrorClassifier()


def is_missing_field(record: Union[ErrorRecord, str]) -> bool:
    """Classify with the default rule table"""
    return _default_classifier.is_missing_field(record)


def classify(record: Union[ErrorRecord, str]) -> ClassifiedError:
    """Classify with the default rule table"""
    return _default_classifier.classify(record)
