"""
Schema discovery harness

Drives an opaque endpoint towards a structurally complete payload:

    SEED -> SENT -> CLASSIFIED -> CONVERGED
                               -> NEXT_ITERATION -> SENT ...
                               -> EXHAUSTED

Each iteration sends the current payload, classifies the returned
errors, fills the fields reported missing from a resolver and tries
again. It stops when no missing-field error remains (CONVERGED) or when
the iteration budget is spent or no reported field can be resolved
(EXHAUSTED, raised as DiscoveryExhaustedError).
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from websrm.client.envelope import collect_errors
from websrm.client.http_client import HttpResponse
from websrm.discovery.classifier import ClassifiedError, ErrorClassifier
from websrm.exceptions import DiscoveryExhaustedError, ValidationError
from websrm.models.enrolment import ErrorRecord


logger = logging.getLogger(__name__)

# Sends one candidate payload and returns the raw response
Sender = Callable[[Dict[str, Any]], HttpResponse]

# Returns a value for a missing field path, or None when unknown
FieldResolver = Callable[[str, ErrorRecord], Any]

PATH_SEPARATOR = "/"


class DiscoveryState(str, Enum):
    """Harness states"""
    SEED = "SEED"
    SENT = "SENT"
    CLASSIFIED = "CLASSIFIED"
    NEXT_ITERATION = "NEXT_ITERATION"
    CONVERGED = "CONVERGED"
    EXHAUSTED = "EXHAUSTED"


@dataclass
class DiscoveryIteration:
    """
    One request/response round

    Attributes:
        index: 1-based iteration number
        payload: Exact payload sent (deep copy)
        http_status: Status returned by the server
        errors: Every error record returned
        classified_missing_fields: Field paths (or messages, when no path
            could be extracted) of the missing-field errors
        business_errors: Errors classified as business validation
        response: Decoded response body
    """
    index: int
    payload: Dict[str, Any]
    http_status: int
    errors: List[ErrorRecord]
    classified_missing_fields: List[str]
    business_errors: List[ErrorRecord] = field(default_factory=list)
    response: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "http_status": self.http_status,
            "errors": [e.model_dump() for e in self.errors],
            "classified_missing_fields": list(self.classified_missing_fields),
            "business_errors": [e.model_dump() for e in self.business_errors],
        }


@dataclass
class DiscoveryReport:
    """Auditable trail of a discovery run"""
    iterations: List[DiscoveryIteration] = field(default_factory=list)
    state: DiscoveryState = DiscoveryState.SEED
    final_payload: Dict[str, Any] = field(default_factory=dict)
    unresolved_fields: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def converged(self) -> bool:
        return self.state == DiscoveryState.CONVERGED

    @property
    def last(self) -> Optional[DiscoveryIteration]:
        return self.iterations[-1] if self.iterations else None

    @property
    def missing_fields(self) -> List[str]:
        """Missing fields reported by the final iteration"""
        return list(self.last.classified_missing_fields) if self.last else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "iterations": [iteration.to_dict() for iteration in self.iterations],
            "final_payload": self.final_payload,
            "unresolved_fields": list(self.unresolved_fields),
        }


def get_path(payload: Mapping[str, Any], path: str) -> Any:
    """Value at a slash-separated path, or None"""
    node: Any = payload
    for part in path.split(PATH_SEPARATOR):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def set_path(payload: Dict[str, Any], path: str, value: Any) -> None:
    """
    Set a value at a slash-separated path, creating objects on the way

    Raises:
        ValidationError: If an intermediate node exists and is not an object
    """
    parts = [part for part in path.split(PATH_SEPARATOR) if part]
    if not parts:
        raise ValidationError(f"Empty field path: {path!r}", field="path")

    node = payload
    for part in parts[:-1]:
        child = node.get(part)
        if child is None:
            child = {}
            node[part] = child
        elif not isinstance(child, dict):
            raise ValidationError(
                f"Cannot descend into non-object at '{part}' of '{path}'",
                field=path,
            )
        node = child
    node[parts[-1]] = copy.deepcopy(value)


class SchemaDiscoveryHarness:
    """
    Iteratively completes a payload against an endpoint that only reveals
    its schema through error messages

    Example:
        >>> harness = SchemaDiscoveryHarness(
        ...     send=lambda body: session.post(url, headers, {"reqTrans": {"transActu": body}}, bundle),
        ...     resolver={"noTrans": "0001", "datTrans": "20250101120000"},
        ... )
        >>> report = harness.run({"typTrans": "RFER"})
        >>> report.converged
        True
    """

    DEFAULT_MAX_ITERATIONS = 10

    def __init__(
        self,
        send: Sender,
        resolver: Union[Mapping[str, Any], FieldResolver, None] = None,
        classifier: Optional[ErrorClassifier] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        artifacts_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        """
        Args:
            send: Sends a candidate payload and returns the raw response
            resolver: Values for discovered fields, by path or via a callable
            classifier: Rule table deciding missing vs business errors
            max_iterations: Iteration budget
            artifacts_dir: When set, every request/response is written here
        """
        if max_iterations < 1:
            raise ValidationError("max_iterations must be at least 1", field="max_iterations")

        self._send = send
        self._resolver = self._make_resolver(resolver)
        self._classifier = classifier or ErrorClassifier()
        self._max_iterations = max_iterations
        self._artifacts_dir = Path(artifacts_dir) if artifacts_dir else None
        self._state = DiscoveryState.SEED

    @property
    def state(self) -> DiscoveryState:
        return self._state

    def run(
        self,
        seed_payload: Dict[str, Any],
        raise_on_exhausted: bool = True,
    ) -> DiscoveryReport:
        """
        Run until converged or exhausted

        Args:
            seed_payload: Starting payload (not modified)
            raise_on_exhausted: Raise DiscoveryExhaustedError instead of
                returning an EXHAUSTED report

        Returns:
            DiscoveryReport

        Raises:
            DiscoveryExhaustedError: Budget spent or no progress possible
                while missing-field errors remain
            TransportError: If a send fails at the transport level
        """
        payload = copy.deepcopy(seed_payload)
        report = DiscoveryReport()
        self._transition(DiscoveryState.SEED)

        for index in range(1, self._max_iterations + 1):
            sent = copy.deepcopy(payload)
            response = self._send(sent)
            self._transition(DiscoveryState.SENT)

            iteration = self._classify(index, sent, response)
            report.iterations.append(iteration)
            self._transition(DiscoveryState.CLASSIFIED)
            self._export_iteration(iteration)

            logger.info(
                "Discovery iteration %d: HTTP %d, %d error(s), %d missing field(s)",
                index,
                iteration.http_status,
                len(iteration.errors),
                len(iteration.classified_missing_fields),
            )

            if not iteration.classified_missing_fields:
                return self._finish(report, payload, DiscoveryState.CONVERGED)

            unresolved = self._fill(payload, iteration)
            if len(unresolved) == len(iteration.classified_missing_fields):
                report.unresolved_fields = unresolved
                logger.warning(
                    "Discovery stalled: no value known for %s", ", ".join(unresolved)
                )
                break

            self._transition(DiscoveryState.NEXT_ITERATION)

        self._finish(report, payload, DiscoveryState.EXHAUSTED)
        if raise_on_exhausted:
            raise DiscoveryExhaustedError(
                f"Discovery stopped after {len(report.iterations)} iteration(s) with "
                f"{len(report.missing_fields)} missing field(s): "
                f"{', '.join(report.missing_fields)}",
                report=report,
            )
        return report

    # ============ Private Helper Methods ============

    def _transition(self, state: DiscoveryState) -> None:
        logger.debug("Discovery state %s -> %s", self._state.value, state.value)
        self._state = state

    def _classify(
        self, index: int, payload: Dict[str, Any], response: HttpResponse
    ) -> DiscoveryIteration:
        body = response.json()
        errors = collect_errors(body)
        classified = self._classifier.classify_all(errors)

        missing = [c for c in classified if c.is_missing_field]
        return DiscoveryIteration(
            index=index,
            payload=payload,
            http_status=response.status,
            errors=errors,
            classified_missing_fields=[self._label(c) for c in missing],
            business_errors=[c.record for c in classified if not c.is_missing_field],
            response=body if body is not None else response.text,
        )

    def _label(self, classified: ClassifiedError) -> str:
        return classified.field_path or classified.record.message

    def _fill(self, payload: Dict[str, Any], iteration: DiscoveryIteration) -> List[str]:
        """Resolve missing fields into the payload, returning the unresolved ones"""
        records = {
            self._label(c): c.record
            for c in self._classifier.classify_all(iteration.errors)
            if c.is_missing_field
        }

        unresolved = []
        for path in iteration.classified_missing_fields:
            value = self._resolver(path, records[path])
            if value is None:
                unresolved.append(path)
                continue
            set_path(payload, path, value)
            logger.debug("Discovery filled %s", path)
        return unresolved

    def _finish(
        self,
        report: DiscoveryReport,
        payload: Dict[str, Any],
        state: DiscoveryState,
    ) -> DiscoveryReport:
        self._transition(state)
        report.state = state
        report.final_payload = copy.deepcopy(payload)
        self._export_summary(report)
        return report

    def _make_resolver(
        self, resolver: Union[Mapping[str, Any], FieldResolver, None]
    ) -> FieldResolver:
        if resolver is None:
            return lambda path, record: None
        if callable(resolver):
            return resolver
        values = dict(resolver)
        return lambda path, record: values.get(path)

    def _export_iteration(self, iteration: DiscoveryIteration) -> None:
        if self._artifacts_dir is None:
            return
        directory = self._artifacts_dir / f"iteration-{iteration.index}"
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "request.json").write_text(
            json.dumps(iteration.payload, indent=2, ensure_ascii=False), "utf-8"
        )
        (directory / "response.json").write_text(
            json.dumps(
                {"httpStatus": iteration.http_status, "body": iteration.response},
                indent=2,
                ensure_ascii=False,
                default=str,
            ),
            "utf-8",
        )

    def _export_summary(self, report: DiscoveryReport) -> None:
        if self._artifacts_dir is None:
            return
        self._artifacts_dir.mkdir(parents=True, exist_ok=True)
        (self._artifacts_dir / "summary.json").write_text(
            json.dumps(report.to_dict(), indent=2, ensure_ascii=False, default=str),
            "utf-8",
        )
