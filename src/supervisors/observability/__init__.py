from supervisors.observability.logger import bind_task, clear_task, get_logger, setup_logging

__all__ = ["bind_task", "clear_task", "get_logger", "setup_logging"]
