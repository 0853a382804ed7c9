"""Sequential executor for process builder pipelines."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from setbuilder.core.exceptions import TaskValidationError
from setbuilder.services.process_builder.errors import (
    EXECUTION_ERROR,
    create_error,
    create_task_error,
)
from setbuilder.services.process_builder.task import ProcessTask
from setbuilder.services.process_builder.types import (
    Goal,
    PipelineContext,
    PipelineResult,
    PipelineStatus,
    Rules,
    RunOptions,
    TaskResult,
)

logger = logging.getLogger(__name__)


class ProcessBuilderExecutor:
    """Runs an ordered list of tasks against a fresh context.

    Callers always get a PipelineResult back. Unexpected exceptions inside a
    task become TASK_EXECUTION_FAILED results. A rejected validator, or any
    other fault in the control loop itself, aborts the run with an
    EXECUTION_ERROR.
    """

    def __init__(
        self,
        tasks: Sequence[ProcessTask],
        *,
        process_id: str = "unknown",
        process_name: str = "unknown",
    ) -> None:
        self.tasks = list(tasks)
        self.process_id = process_id
        self.process_name = process_name

    async def execute(
        self,
        goal: Goal,
        rules: Rules,
        options: RunOptions | None = None,
    ) -> PipelineResult:
        options = options or RunOptions()
        started = time.perf_counter()
        context = PipelineContext(goal=goal, rules=rules, options=options)
        log_info = {"process_id": self.process_id, "goal": goal.text}

        try:
            await self._run_tasks(context, log_info)
        except TaskValidationError as exc:
            logger.warning(
                "Process aborted by task validator",
                extra={**log_info, "task_id": exc.task_id, "error": exc.message},
            )
            return self._finish(
                context,
                started,
                status="error",
                extra_errors=[create_error(EXECUTION_ERROR, exc.message, task_id=exc.task_id, details=exc.details)],
            )
        except Exception as exc:
            logger.exception("Process aborted by executor fault", extra=log_info)
            return self._finish(
                context,
                started,
                status="error",
                extra_errors=[
                    create_error(
                        EXECUTION_ERROR,
                        str(exc) or type(exc).__name__,
                        details={"exception_type": type(exc).__name__},
                    )
                ],
            )

        if all(result.success for result in context.previous_results):
            status: PipelineStatus = "success"
        elif options.allow_partial_results:
            status = "partial"
        else:
            status = "error"
        return self._finish(context, started, status=status)

    async def _run_tasks(self, context: PipelineContext, log_info: dict) -> None:
        for task in self.tasks:
            task_info = {**log_info, "task_id": task.task_id}

            validation = await task.validate(context)
            if not validation.valid:
                raise TaskValidationError(task.task_id, validation.error)

            logger.info("Task started", extra=task_info)
            try:
                result = await task.execute(context)
            except Exception as exc:
                logger.exception("Task raised unexpectedly", extra=task_info)
                result = TaskResult(
                    success=False,
                    errors=[
                        create_task_error(
                            task.task_id,
                            str(exc) or type(exc).__name__,
                            details={"exception_type": type(exc).__name__},
                        )
                    ],
                )

            context.previous_results.append(result)
            if result.data is not None:
                context.outputs[task.task_id] = result.data
            context.metadata.update(result.metadata)

            if result.success:
                logger.info(
                    "Task completed",
                    extra={**task_info, "warnings": len(result.warnings)},
                )
                continue

            logger.warning(
                "Task failed",
                extra={**task_info, "error_codes": [error.code for error in result.errors]},
            )
            if not context.options.allow_partial_results:
                break

    def _finish(
        self,
        context: PipelineContext,
        started: float,
        *,
        status: PipelineStatus,
        extra_errors: list | None = None,
    ) -> PipelineResult:
        results = tuple(context.previous_results)
        errors = [error for result in results for error in result.errors]
        errors.extend(extra_errors or [])
        execution_time_ms = int((time.perf_counter() - started) * 1000)

        logger.info(
            "Process finished",
            extra={
                "process_id": self.process_id,
                "status": status,
                "tasks_run": len(results),
                "execution_time_ms": execution_time_ms,
            },
        )
        return PipelineResult(
            status=status,
            process_id=self.process_id,
            process_name=self.process_name,
            task_results=results,
            final_result=results[-1].data if results else None,
            errors=tuple(errors),
            warnings=tuple(warning for result in results for warning in result.warnings),
            execution_time_ms=execution_time_ms,
            metadata=dict(context.metadata),
        )
