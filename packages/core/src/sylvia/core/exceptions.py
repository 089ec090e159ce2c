"""Core 异常体系

任务存储与工作流层的业务异常。
"""


class SylviaError(Exception):
    """Sylvia 基础异常"""


class TaskValidationError(SylviaError):
    """任务变更不合法（字段非法、引用了不存在的任务等）"""


class TaskNotFoundError(TaskValidationError):
    """引用的任务不存在"""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id {task_id} does not exist")
        self.task_id = task_id


class WorkflowStepError(SylviaError):
    """工作流步骤执行失败

    recoverable=True 时由 WorkflowRunner 重新投递整个工作流，
    已完成的步骤命中记忆不会重复执行。
    """

    def __init__(self, step: str, message: str, recoverable: bool = False) -> None:
        super().__init__(f"[{step}] {message}")
        self.step = step
        self.recoverable = recoverable
