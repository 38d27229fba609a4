"""HPP录入与提交的异常类型"""
from typing import Dict, Optional


class ProfitDeskError(Exception):
    """基础异常"""


class ValidationError(ProfitDeskError, ValueError):
    """手工输入的HPP无效（非数字或负数）"""

    def __init__(self, sku: str, raw_value, message: Optional[str] = None):
        self.sku = sku
        self.raw_value = raw_value
        super().__init__(message or f"Invalid HPP value for SKU '{sku}': {raw_value!r}")


class ParseError(ProfitDeskError):
    """表格文件无法解析"""


class PreconditionError(ProfitDeskError):
    """提交前置条件不满足"""


class SubmissionError(ProfitDeskError):
    """后端拒绝了批量提交"""

    def __init__(self, message: str, rejected: Optional[Dict[str, str]] = None):
        self.rejected = dict(rejected or {})
        super().__init__(message)
