"""表格文件解析与HPP模板生成

上传的表格按表头名匹配列（忽略大小写，支持别名），
每一行解析为 ValidRow 或 SkippedRow，后者只计入统计、不作为错误上报。
"""
import io
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from ..data.amounts import parse_non_negative, to_json_number
from ..data.models import SkuRecord
from ..engine.errors import ParseError

logger = logging.getLogger(__name__)

# 字段 -> 可接受的表头（按优先级）
HEADER_ALIASES: Dict[str, tuple] = {
    'sku': ('SKU', 'sku'),
    'hpp': ('New HPP', 'new_hpp', 'hpp'),
    'item_name': ('Item Name', 'item_name'),
}

TEMPLATE_COLUMNS = [
    'SKU', 'Item Name', 'Current HPP', 'New HPP', 'Total Orders', 'Total Quantity', 'Total Revenue'
]
TEMPLATE_SHEET_NAME = 'HPP Input Template'
TEMPLATE_FILENAME = 'hpp-input-template.xlsx'

# 第1行为表头，数据从第2行开始
FIRST_DATA_ROW = 2


@dataclass
class ValidRow:
    """解析成功的行"""
    row_number: int
    sku: str
    hpp: Decimal
    item_name: Optional[str] = None

    @property
    def source(self) -> str:
        return f"spreadsheet-row {self.row_number}"


@dataclass
class SkippedRow:
    """被跳过的行"""
    row_number: int
    reason: str


ParsedRow = Union[ValidRow, SkippedRow]


def _normalize_header(name: Any) -> str:
    return str(name).strip().lower()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return isinstance(value, str) and not value.strip()


def _cell_text(value: Any) -> str:
    # Excel 会把纯数字SKU读成浮点数
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def resolve_columns(headers: Iterable[Any]) -> Dict[str, List[Any]]:
    """把原始表头映射到字段，保持别名优先级"""
    by_normalized: Dict[str, List[Any]] = {}
    for header in headers:
        by_normalized.setdefault(_normalize_header(header), []).append(header)

    resolved = {}
    for field_name, aliases in HEADER_ALIASES.items():
        matched = []
        for alias in aliases:
            for header in by_normalized.get(_normalize_header(alias), []):
                if header not in matched:
                    matched.append(header)
        resolved[field_name] = matched
    return resolved


def _first_value(row: Dict[Any, Any], headers: Sequence[Any]) -> Any:
    for header in headers:
        value = row.get(header)
        if not _is_blank(value):
            return value
    return None


def from_tabular(raw_rows: Sequence[Dict[Any, Any]]) -> List[ParsedRow]:
    """把松散类型的表格行解析为 ValidRow / SkippedRow"""
    headers: List[Any] = []
    for row in raw_rows:
        for header in row.keys():
            if header not in headers:
                headers.append(header)
    columns = resolve_columns(headers)

    parsed: List[ParsedRow] = []
    for index, row in enumerate(raw_rows):
        row_number = index + FIRST_DATA_ROW

        sku_value = _first_value(row, columns['sku'])
        if sku_value is None:
            parsed.append(SkippedRow(row_number, 'missing SKU'))
            continue

        raw_hpp = _first_value(row, columns['hpp'])
        hpp = parse_non_negative(raw_hpp)
        if hpp is None:
            reason = 'missing HPP' if raw_hpp is None else f'invalid HPP {raw_hpp!r}'
            parsed.append(SkippedRow(row_number, reason))
            continue

        name_value = _first_value(row, columns['item_name'])
        parsed.append(ValidRow(
            row_number=row_number,
            sku=_cell_text(sku_value),
            hpp=hpp,
            item_name=_cell_text(name_value) if name_value is not None else None,
        ))

    return parsed


def decode_spreadsheet(content: bytes, filename: str = '') -> List[Dict[Any, Any]]:
    """读取上传的表格文件（第一个工作表），返回行字典列表"""
    if not content:
        raise ParseError("Uploaded file is empty")

    name = (filename or '').lower()
    try:
        if name.endswith('.csv'):
            df = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=False, encoding='utf-8-sig')
        else:
            engine = 'xlrd' if name.endswith('.xls') else 'openpyxl'
            df = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=object,
                               keep_default_na=False, engine=engine)
    except Exception as e:
        logger.error(f"Error reading spreadsheet '{filename}': {e}")
        raise ParseError(f"Error reading spreadsheet file. Please check the format: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    logger.info(f"Decoded spreadsheet '{filename}' with {len(df)} rows")
    return df.to_dict('records')


def build_template(skus: Iterable[SkuRecord]) -> bytes:
    """生成HPP录入模板（xlsx）"""
    data = []
    for record in skus:
        data.append({
            'SKU': record.sku,
            'Item Name': record.item_name,
            'Current HPP': to_json_number(record.current_hpp) if record.has_hpp else '',
            'New HPP': '',
            'Total Orders': record.total_orders,
            'Total Quantity': record.total_quantity,
            'Total Revenue': to_json_number(record.total_revenue),
        })

    df = pd.DataFrame(data, columns=TEMPLATE_COLUMNS)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        df.to_excel(writer, sheet_name=TEMPLATE_SHEET_NAME, index=False)
    return buffer.getvalue()
