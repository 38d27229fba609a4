"""金额与百分比工具

所有金额使用 Decimal 定点数，中间计算不做舍入，
只有在格式化输出时才对百分比做四舍五入（ROUND_HALF_UP，两位小数）。
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Union

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PERCENT_QUANTUM = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Any) -> Optional[Decimal]:
    """转换为 Decimal，无法解析时返回 None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, float):
        # 经由字符串转换，避免二进制浮点误差进入定点数
        value = repr(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return result


def parse_non_negative(value: Any) -> Optional[Decimal]:
    """解析非负金额，非数字或负数返回 None"""
    result = to_decimal(value)
    if result is None or result < ZERO:
        return None
    # -0 统一为 0
    return result + ZERO


def percentage(part: Optional[Decimal], whole: Optional[Decimal]) -> Optional[Decimal]:
    """计算 part / whole * 100，whole 非正或 part 未知时返回 None"""
    if part is None or whole is None or whole <= ZERO:
        return None
    return part / whole * HUNDRED


def round_percent(value: Optional[Decimal]) -> Optional[Decimal]:
    """百分比四舍五入到两位小数（仅用于展示）"""
    if value is None:
        return None
    return value.quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def plain(value: Optional[Number]) -> str:
    """输出为不带货币符号、千分位的纯数字文本"""
    if value is None:
        return ""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    number = to_decimal(value)
    if number is None:
        return str(value)
    text = format(number, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text


def to_json_number(value: Optional[Decimal]) -> Union[int, float, None]:
    """转换为 JSON 数字（整数保持为 int）"""
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)
