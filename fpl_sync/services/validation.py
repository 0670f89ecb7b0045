"""
Schema validation for upstream payloads.

Nothing in this module raises for bad input: every function returns a result
value describing what was accepted and what was rejected. Batches are
validated record by record, so one malformed record is reported and dropped
while the rest continue downstream.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from fpl_sync.core.errors import MappingError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class FieldViolation:
    """One field-level problem, e.g. ('stats', 'minutes'): 'Field required'."""
    location: Tuple[Any, ...]
    message: str

    def __str__(self) -> str:
        path = ".".join(str(part) for part in self.location) or "<record>"
        return f"{path}: {self.message}"


@dataclass
class RecordValidation(Generic[M]):
    """Outcome of validating a single payload."""
    value: Optional[M] = None
    violations: List[FieldViolation] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.value is not None and not self.violations


@dataclass(frozen=True)
class RecordFailure:
    """
    A record excluded from a batch.

    Attributes:
        index: Position of the record in the upstream batch
        record_id: Upstream 'id' when one could be read, for diagnostics
        stage: 'validation' or 'mapping'
        violations: What was wrong
    """
    index: int
    record_id: Any
    stage: str
    violations: Tuple[FieldViolation, ...]

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "record_id": self.record_id,
            "stage": self.stage,
            "violations": [str(v) for v in self.violations],
        }


@dataclass
class BatchValidation(Generic[M]):
    valid: List[M] = field(default_factory=list)
    failures: List[RecordFailure] = field(default_factory=list)


@dataclass
class MappedBatch:
    records: List[Any] = field(default_factory=list)
    failures: List[RecordFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records) + len(self.failures)


def _record_id(payload: Any) -> Any:
    # Pick documents carry no id of their own; the stamped entry identifies them
    if not isinstance(payload, dict):
        return None
    return payload.get("id", payload.get("entry"))


def validate_record(schema: Type[M], payload: Any) -> RecordValidation[M]:
    """Validate one payload; returns violations instead of raising."""
    try:
        return RecordValidation(value=schema.model_validate(payload))
    except PydanticValidationError as e:
        return RecordValidation(
            violations=[FieldViolation(tuple(err["loc"]), err["msg"]) for err in e.errors()]
        )


def validate_batch(schema: Type[M], payloads: Sequence[Any]) -> BatchValidation[M]:
    result: BatchValidation[M] = BatchValidation()
    for index, payload in enumerate(payloads):
        outcome = validate_record(schema, payload)
        if outcome.is_valid:
            result.valid.append(outcome.value)
        else:
            result.failures.append(
                RecordFailure(index, _record_id(payload), "validation", tuple(outcome.violations))
            )
    return result


def validate_and_map(descriptor: Any, payloads: Sequence[Any], context: Any) -> MappedBatch:
    """
    Validate and map a batch for one entity type.

    Mapping failures are reported the same way as validation failures, so
    given N payloads of which one is bad the result holds N-1 records and
    one failure.
    """
    batch = MappedBatch()
    for index, payload in enumerate(payloads):
        outcome = validate_record(descriptor.schema, payload)
        if not outcome.is_valid:
            batch.failures.append(
                RecordFailure(index, _record_id(payload), "validation", tuple(outcome.violations))
            )
            continue
        try:
            batch.records.append(descriptor.mapper(outcome.value, context))
        except MappingError as e:
            batch.failures.append(
                RecordFailure(index, _record_id(payload), "mapping", (FieldViolation((), e.message),))
            )

    if batch.failures:
        logger.warning(
            f"{descriptor.name}: rejected {len(batch.failures)}/{batch.total} upstream records",
            extra={"failures": [f.to_dict() for f in batch.failures[:10]]},
        )
    return batch
