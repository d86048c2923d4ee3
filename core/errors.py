class LedgerError(Exception):
    """用量 / 设置相关错误的基类。"""


class ConstraintViolation(LedgerError, ValueError):
    """参数或主键不合法（空 child_id、未知 kind、负数等），在访问存储前抛出。"""


class StoreUnavailable(LedgerError):
    """存储不可达或超时。"""


class AIServiceError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class OCRServiceError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code
