"""
Orchestration-based saga runner.

Runs an ordered list of steps against remote services that share no
transaction. When a step fails, the compensations of the steps that
already succeeded run in reverse order and the original error is raised
again to the caller.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

logger = logging.getLogger(__name__)


# ============================================================================
# Enums and Models
# ============================================================================

class SagaStatus(Enum):
    """Overall saga status"""
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    COMPENSATING = "COMPENSATING"
    FAILED = "FAILED"


class StepStatus(Enum):
    """Individual step status"""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    COMPENSATED = "COMPENSATED"
    COMPENSATION_FAILED = "COMPENSATION_FAILED"


class SagaStep:
    """Represents a step in the saga"""

    def __init__(
        self,
        name: str,
        action: Callable[[], Any],
        compensation: Optional[Callable[[], Any]] = None,
        keep_on: Tuple[Type[BaseException], ...] = (),
    ):
        self.name = name
        self.action = action
        self.compensation = compensation  # None: nothing to undo
        # failures of these types leave earlier steps in place
        self.keep_on = keep_on
        self.status = StepStatus.PENDING
        self.result = None
        self.error: Optional[str] = None
        self.executed_at: Optional[datetime] = None
        self.compensated_at: Optional[datetime] = None

    def __repr__(self):
        return f"SagaStep({self.name}, status={self.status.value})"


class SagaExecution:
    """Tracks the execution of a saga"""

    def __init__(self, name: str, order_id: uuid.UUID):
        self.name = name
        self.order_id = order_id
        self.saga_id = str(uuid.uuid4())
        self.started_at = datetime.now(timezone.utc)
        self.completed_at: Optional[datetime] = None
        self.steps: List[SagaStep] = []
        self.current_step_index = 0
        self.status = SagaStatus.RUNNING
        self.error: Optional[str] = None

    def add_step(self, step: SagaStep) -> "SagaExecution":
        self.steps.append(step)
        return self

    def get_current_step(self) -> Optional[SagaStep]:
        if self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    def move_to_next_step(self):
        self.current_step_index += 1

    def get_completed_steps(self) -> List[SagaStep]:
        return self.steps[:self.current_step_index]

    def result_of(self, name: str) -> Any:
        for step in self.steps:
            if step.name == name:
                return step.result
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'order_id': str(self.order_id),
            'saga_id': self.saga_id,
            'status': self.status.value,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'error': self.error,
            'steps': [
                {'name': step.name, 'status': step.status.value, 'error': step.error}
                for step in self.steps
            ],
        }


# ============================================================================
# Runner
# ============================================================================

def run_saga(execution: SagaExecution) -> SagaExecution:
    """
    Execute every step in order.

    - If all succeed: status COMPLETED, the execution is returned.
    - If one fails: completed steps are compensated in reverse order,
      status becomes FAILED and the step's exception is re-raised.
      Exceptions listed in the step's ``keep_on`` skip compensation.
    """
    logger.info(
        f"Saga '{execution.name}' started for order {execution.order_id} "
        f"(saga_id={execution.saga_id})"
    )

    while execution.get_current_step():
        step = execution.get_current_step()
        step.status = StepStatus.IN_PROGRESS
        try:
            step.result = step.action()
        except Exception as e:
            step.status = StepStatus.FAILED
            step.error = str(e)
            execution.error = str(e)
            logger.error(f"✗ {step.name} failed for order {execution.order_id}: {e}")

            if isinstance(e, step.keep_on):
                logger.warning(f"{step.name} failure keeps completed steps of order {execution.order_id}")
            else:
                _compensate(execution)
            execution.status = SagaStatus.FAILED
            execution.completed_at = datetime.now(timezone.utc)
            raise

        step.status = StepStatus.SUCCESS
        step.executed_at = datetime.now(timezone.utc)
        logger.info(f"✓ {step.name} succeeded for order {execution.order_id}")
        execution.move_to_next_step()

    execution.status = SagaStatus.COMPLETED
    execution.completed_at = datetime.now(timezone.utc)
    logger.info(
        f"✓ Saga '{execution.name}' completed for order {execution.order_id} "
        f"(saga_id={execution.saga_id})"
    )
    return execution


def _compensate(execution: SagaExecution):
    """
    Run compensating actions for all completed steps, newest first.

    A failing compensation is logged and the remaining ones still run.
    """
    execution.status = SagaStatus.COMPENSATING
    completed = [s for s in execution.get_completed_steps() if s.compensation is not None]
    if not completed:
        return

    logger.warning(
        f"Starting compensation for order {execution.order_id} "
        f"(saga_id={execution.saga_id})"
    )

    for step in reversed(completed):
        try:
            logger.info(f"Compensating: {step.name}")
            step.compensation()
            step.status = StepStatus.COMPENSATED
            step.compensated_at = datetime.now(timezone.utc)
            logger.info(f"✓ {step.name} compensated for order {execution.order_id}")
        except Exception as e:
            step.status = StepStatus.COMPENSATION_FAILED
            logger.error(
                f"✗ Compensation failed for {step.name} on order {execution.order_id}: {e}. "
                f"Manual intervention may be required."
            )
